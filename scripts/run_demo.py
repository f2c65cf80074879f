#!/usr/bin/env python3
"""
run_demo.py - End-to-end walk through the storefront
- Mints admin & customer tokens with the shared JWT secret
- Admin creates a product with stock
- Customer fills a cart, opens a payment intent and checks out
- Admin fulfils the order and runs the low-stock scan
- Prints notification emails from MailHog (if available)
"""

import json
import os
from typing import Any, Dict, List, Optional

import jwt
import requests


def mint_token(email: str, role: str = "customer") -> str:
    secret = os.getenv("JWT_SECRET", "devsecret")
    return jwt.encode({"sub": email, "role": role, "type": "access"}, secret, algorithm="HS256")


class DemoRunner:
    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url.rstrip("/")
        self.mailhog_api = os.getenv("MAILHOG_API", "http://localhost:8025/api/v2/messages")

        self.admin_hdrs = {"Authorization": f"Bearer {mint_token('admin@example.com', 'admin')}"}
        self.cust_hdrs = {"Authorization": f"Bearer {mint_token('cust@example.com')}"}

    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201],
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        print(f"\n-> {method} {url}")
        if data is not None:
            print(f"   Body: {json.dumps(data, indent=2)}")
        try:
            resp = requests.request(method, url, headers=headers, json=data, timeout=30)
        except requests.exceptions.RequestException as e:
            print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None}

        color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
        print(f"   Status: {color}{resp.status_code}\033[0m")
        try:
            body = resp.json()
        except ValueError:
            body = None
        if body is not None:
            print(json.dumps(body, indent=2))
        return {"status": resp.status_code, "data": body}

    def run_demo(self):
        print("Starting Storefront Demo")
        print("=" * 50)

        self.show_step("Preflight: health")
        if self.call_api("GET", "/health").get("status") != 200:
            print("\033[91mStorefront is not reachable; start it with uvicorn first.\033[0m")
            return
        self.call_api("GET", "/payment/v1/demo-status")

        self.show_step("Admin: create product")
        created = self.call_api(
            "POST",
            "/catalog/v1/products",
            headers=self.admin_hdrs,
            data={
                "title": "Air Zoom",
                "slug": "air-zoom",
                "sku": "SKU-001",
                "description": "Runner",
                "price_cents": 12999,
                "in_stock": 12,
                "reorder_level": 10,
            },
            expected_status=[201, 409],
        )
        product_id = (created.get("data") or {}).get("id", 1)

        self.show_step("Customer: add to cart")
        self.call_api(
            "POST",
            "/cart/v1/cart/items",
            headers=self.cust_hdrs,
            data={"product_id": product_id, "qty": 2},
        )

        self.show_step("Customer: create payment intent")
        intent = self.call_api("POST", "/payment/v1/payments/create-intent", headers=self.cust_hdrs, data={})
        intent_ref = (intent.get("data") or {}).get("payment_intent_id")

        self.show_step("Customer: checkout")
        order_id = None
        if intent_ref:
            co = self.call_api(
                "POST",
                "/order/v1/orders/checkout",
                headers=self.cust_hdrs,
                data={
                    "payment_intent_id": intent_ref,
                    "shipping": {
                        "first_name": "Demo",
                        "last_name": "Customer",
                        "email": "cust@example.com",
                        "phone": "+353 1 555 0100",
                        "address": "1 Demo Street",
                        "city": "Dublin",
                        "state": "Leinster",
                        "postal_code": "D01XY",
                        "country": "IE",
                    },
                },
            )
            order_id = (co.get("data") or {}).get("order_id")
        else:
            print("Skipping checkout - no payment intent")

        self.show_step("Admin: fulfil order")
        if order_id:
            self.call_api(
                "PATCH",
                f"/order/v1/admin/orders/{order_id}",
                headers=self.admin_hdrs,
                data={"fulfillment_status": "FULFILLED", "tracking_number": "1Z999AA1", "carrier": "UPS"},
            )
            self.call_api("GET", f"/order/v1/orders/{order_id}", headers=self.cust_hdrs)
        else:
            print("Skipping fulfilment - no order ID")

        self.show_step("Admin: low-stock scan and alert")
        self.call_api("GET", "/catalog/v1/admin/stock/low", headers=self.admin_hdrs)
        self.call_api("POST", "/catalog/v1/admin/stock/alerts", headers=self.admin_hdrs)

        self.show_step("Notifications: fetch emails from MailHog (optional)")
        self.show_mailhog()

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")

    def show_mailhog(self, limit: int = 5):
        try:
            r = requests.get(f"{self.mailhog_api}?limit={limit}", timeout=5)
        except requests.exceptions.RequestException:
            print("MailHog not reachable. Skipping.")
            return
        if r.status_code != 200:
            print("MailHog returned non-200.")
            return
        data = r.json()
        print(f"Found {data.get('total', 0)} emails. Showing up to {limit} recent:")
        for i, m in enumerate(data.get("items", []), 1):
            headers = m.get("Content", {}).get("Headers", {})
            to = ", ".join(headers.get("To") or [])
            subj = (headers.get("Subject") or [""])[0]
            print(f"  {i}. To: {to} | Subject: {subj}")


if __name__ == "__main__":
    DemoRunner(os.getenv("STOREFRONT_URL", "http://localhost:8000")).run_demo()
