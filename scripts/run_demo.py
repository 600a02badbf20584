#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo for the storefront fulfillment service
- Places a public catalog order for the demo tenant
- Registers a payment and verifies it (order -> CONFIRMED)
- Assigns a courier (order -> SHIPPED, customer gets the delivery code)
- Confirms the handoff with the code (order -> DELIVERED)
- Rates the delivery through the public endpoint

Run scripts/seed.py first and export the variables it prints.
"""

import requests
import json
import os
import sys
from typing import Dict, Any, Optional, List

class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("STOREFRONT_URL", "http://localhost:8000")
        self.token = os.getenv("STOREFRONT_TOKEN", "")
        self.slug = os.getenv("DEMO_SLUG", "demo-store")
        self.product_ids = [int(p) for p in os.getenv("DEMO_PRODUCT_IDS", "1,2").split(",") if p]
        self.customer_phone = os.getenv("DEMO_PHONE", "+584141112233")

    # ---------- helpers ----------
    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def mask_token(self, token: str) -> str:
        if not token:
            return "<none>"
        return token if len(token) <= 12 else f"{token[:8]}...{token[-6:]}"

    @property
    def auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201, 204],
        quiet: bool = False,
        timeout: int = 30,
    ):
        url = f"{self.base_url}{path}"
        if not quiet:
            print(f"\n-> {method} {url}")
            if headers and "Authorization" in headers:
                print(f"   Authorization: Bearer {self.mask_token(self.token)}")
            if data is not None:
                print(f"   Body: {json.dumps(data, indent=2)}")

        try:
            resp = requests.request(method=method, url=url, headers=headers, json=data, timeout=timeout)
        except requests.exceptions.RequestException as e:
            if not quiet:
                print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None, "error": str(e)}

        if not quiet:
            status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
            print(f"   Status: {status_color}{resp.status_code}\033[0m")
        try:
            js = resp.json()
        except json.JSONDecodeError:
            js = None
        if js is not None and not quiet:
            print(json.dumps(js, indent=2))
        return {"status": resp.status_code, "data": js}

    # ---------- flow ----------
    def preflight_health_checks(self) -> bool:
        self.show_step("Preflight: service health")
        result = self.call_api("GET", "/health", quiet=True)
        ok = result.get("status") == 200
        color = "\033[92m" if ok else "\033[91m"
        print(f"  - {'storefront'.ljust(14)} -> {color}{'OK' if ok else 'FAIL'}\033[0m")
        return ok

    def run_demo(self) -> int:
        print("Starting Storefront Fulfillment Demo")
        print("=" * 50)

        if not self.preflight_health_checks():
            return 1
        if not self.token:
            print("\033[91mSTOREFRONT_TOKEN is not set; run scripts/seed.py first.\033[0m")
            return 1

        # 1) Customer places an order through the public catalog
        self.show_step("Customer: place catalog order")
        res = self.call_api("POST", f"/catalog/{self.slug}/orders", data={
            "customer": {
                "phone": self.customer_phone,
                "preferences": {"shippingZoneSlug": "chacao", "shippingMethodCode": "moto", "shippingCost": 3.5},
            },
            "items": [{"product_id": pid, "quantity": q} for pid, q in zip(self.product_ids, (3, 2))],
            "payment_method": "ZELLE",
        })
        order = res.get("data") or {}
        order_id = order.get("id")
        if not order_id:
            print("Order was not created; stopping.")
            return 1
        print(f"Order ID: {order_id}; Total: {order.get('total_cents')} cents")

        # 2) Customer reports a payment, owner verifies it
        self.show_step("Payment: register")
        res = self.call_api("POST", "/payments", headers=self.auth,
                            data={"order_id": order_id, "method": "ZELLE", "reference": "ZL-DEMO-1"})
        payment_id = (res.get("data") or {}).get("id")

        self.show_step("Payment: verify")
        self.call_api("PATCH", f"/payments/{payment_id}/verify", headers=self.auth,
                      data={"status": "VERIFIED", "notes": "Matches bank statement"})

        # 3) Assign a courier
        self.show_step("Delivery: pick a courier")
        persons = self.call_api("GET", "/delivery/persons", headers=self.auth).get("data") or []
        if not persons:
            print("No couriers available; stopping.")
            return 1
        courier_id = persons[0]["id"]

        self.show_step("Delivery: assign")
        self.call_api("POST", f"/delivery/orders/{order_id}/assign", headers=self.auth,
                      data={"delivery_person_id": courier_id})

        self.show_step("Delivery: pickup")
        self.call_api("POST", f"/delivery/orders/{order_id}/pickup", headers=self.auth)

        # 4) Courier confirms the handoff with the customer's code
        self.show_step("Delivery: read the code the customer received")
        delivery = self.call_api("GET", f"/delivery/orders/{order_id}", headers=self.auth,
                                 quiet=True).get("data") or {}
        code = (delivery.get("delivery_order") or {}).get("otp_code")
        print(f"Delivery code: {code}")

        self.show_step("Delivery: confirm code")
        self.call_api("POST", f"/delivery/orders/{order_id}/confirm-otp", headers=self.auth,
                      data={"otp": code, "delivery_person_id": courier_id})

        # 5) Customer rates the delivery
        self.show_step("Customer: rate delivery")
        self.call_api("POST", "/catalog/delivery/ratings", data={
            "order_id": order_id, "rating": 5, "comment": "Fast and friendly", "delivery_person_id": courier_id,
        })

        self.show_step("Order: final status")
        self.call_api("GET", f"/orders/{order_id}", headers=self.auth)

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")
        return 0


if __name__ == "__main__":
    sys.exit(DemoRunner().run_demo())
