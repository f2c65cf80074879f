"""E-mail templates, one render function per notification kind.

Each renderer takes the JSON-safe ``data`` dict carried by the notification
message and returns ``{"subject", "html", "text"}``. Every interpolated value
is HTML-escaped.
"""

import re
from datetime import datetime, timezone
from html import escape, unescape

from storefront.notifications import NotificationKind

STORE_NAME = "E-Commerce Store"


def _money(cents) -> str:
    return f"${int(cents or 0) / 100:.2f}"


def _e(value) -> str:
    return escape(str(value if value is not None else ""))


def strip_html(html: str) -> str:
    text = re.sub(r"<(style|head)[^>]*>.*?</\1>", "", html, flags=re.S | re.I)
    text = re.sub(r"<br\s*/?>|</p>|</tr>|</h\d>|</li>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]*>", "", text)
    text = unescape(text).replace("\xa0", " ")
    return "\n".join(ln.strip() for ln in text.splitlines() if ln.strip())


def layout(content: str, title: str) -> str:
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{_e(title)}</title></head>
<body style="margin:0;font-family:'Segoe UI',Tahoma,sans-serif;color:#333;background:#f4f4f4">
  <div style="max-width:600px;margin:0 auto;background:#fff">
    <div style="background:#667eea;color:#fff;padding:30px 20px;text-align:center"><h1>{STORE_NAME}</h1></div>
    <div style="padding:40px 30px">{content}</div>
    <div style="padding:20px;text-align:center;font-size:14px;color:#6c757d">
      <p>&copy; {year} {STORE_NAME}. All rights reserved.</p>
      <p>If you have any questions, please contact our support team.</p>
    </div>
  </div>
</body>
</html>"""


def _address_block(addr: dict | None) -> str:
    if not addr:
        return ""
    return (
        f"<p>{_e(addr.get('first_name'))} {_e(addr.get('last_name'))}<br>"
        f"{_e(addr.get('address'))}<br>"
        f"{_e(addr.get('city'))}, {_e(addr.get('state'))} {_e(addr.get('postal_code'))}<br>"
        f"{_e(addr.get('country'))}</p>"
    )


def _rendered(subject: str, content: str, title: str | None = None) -> dict:
    html = layout(content, title or subject)
    return {"subject": subject, "html": html, "text": strip_html(content)}


def render_order_confirmation(data: dict) -> dict:
    rows = "".join(
        f"<tr><td>{_e(it['name'])}</td><td>{_e(it['sku'])}</td><td>{_e(it['quantity'])}</td>"
        f"<td>{_money(it['unit_price_cents'])}</td><td>{_money(it['line_total_cents'])}</td></tr>"
        for it in data.get("items", [])
    )
    extras = ""
    for label, key, sign in (("Tax", "tax_cents", ""), ("Shipping", "shipping_cents", ""), ("Discount", "discount_cents", "-")):
        if data.get(key):
            extras += f"<tr><td colspan=\"4\"><strong>{label}:</strong></td><td>{sign}{_money(data[key])}</td></tr>"
    content = f"""
<h2>Thank you for your order!</h2>
<p>Hello {_e(data.get('customer_name') or 'Customer')},</p>
<p>We've received your order and are preparing it for shipment.</p>
<h3>Order #{_e(data['order_number'])}</h3>
<table>
  <thead><tr><th>Item</th><th>SKU</th><th>Qty</th><th>Price</th><th>Total</th></tr></thead>
  <tbody>{rows}</tbody>
  <tfoot>
    <tr><td colspan="4"><strong>Subtotal:</strong></td><td>{_money(data.get('subtotal_cents'))}</td></tr>
    {extras}
    <tr><td colspan="4"><strong>Total:</strong></td><td>{_money(data.get('total_cents'))}</td></tr>
  </tfoot>
</table>
{'<h3>Shipping Address</h3>' + _address_block(data.get('shipping_address')) if data.get('shipping_address') else ''}
<p>We'll send you another email with tracking information once your order ships.</p>"""
    return _rendered(
        f"Order Confirmation - #{data['order_number']}", content
    )


def render_admin_new_order(data: dict) -> dict:
    rows = "".join(
        f"<tr><td>{_e(it['name'])}</td><td>{_e(it['sku'])}</td><td>{_e(it['quantity'])}</td>"
        f"<td>{_money(it['line_total_cents'])}</td></tr>"
        for it in data.get("items", [])
    )
    content = f"""
<h2>New Order Received</h2>
<p>A new order has been placed and requires processing.</p>
<h3>Order #{_e(data['order_number'])}</h3>
<p><strong>Customer:</strong> {_e(data.get('customer_name'))} ({_e(data.get('customer_email'))})</p>
<p><strong>Total Amount:</strong> {_money(data.get('total_cents'))}</p>
<p><strong>Items:</strong> {len(data.get('items', []))}</p>
<table>
  <thead><tr><th>Item</th><th>SKU</th><th>Qty</th><th>Total</th></tr></thead>
  <tbody>{rows}</tbody>
</table>"""
    return _rendered(f"New Order Alert - #{data['order_number']}", content)


def render_shipping_notification(data: dict) -> dict:
    details = ""
    if data.get("tracking_number"):
        details += f"<p><strong>Tracking Number:</strong> {_e(data['tracking_number'])}</p>"
    if data.get("carrier"):
        details += f"<p><strong>Carrier:</strong> {_e(data['carrier'])}</p>"
    if data.get("estimated_delivery"):
        details += f"<p><strong>Estimated Delivery:</strong> {_e(str(data['estimated_delivery'])[:10])}</p>"
    content = f"""
<h2>Your order has shipped!</h2>
<p>Hello {_e(data.get('customer_name') or 'Customer')},</p>
<p>Your order #{_e(data['order_number'])} has been shipped and is on its way to you.</p>
<h3>Shipping Details</h3>
{details}
<h4>Shipping To:</h4>
{_address_block(data.get('shipping_address'))}
<p>Thank you for your business!</p>"""
    return _rendered(
        f"Your order has shipped - #{data['order_number']}", content, f"Order Shipped - #{data['order_number']}"
    )


def render_welcome(data: dict) -> dict:
    content = f"""
<h2>Welcome to {STORE_NAME}!</h2>
<p>Hello {_e(data.get('name') or 'there')},</p>
<p>Your account for {_e(data.get('email'))} is ready. Start shopping any time.</p>"""
    return _rendered(f"Welcome to {STORE_NAME}", content)


def render_password_reset(data: dict) -> dict:
    content = f"""
<h2>Reset your password</h2>
<p>Hello {_e(data.get('name') or 'there')},</p>
<p>We received a request to reset your password. Use the link below to choose a new one.</p>
<p><a href="{_e(data['reset_url'])}">Reset Password</a></p>
<p>If you didn't request this, you can safely ignore this email.</p>"""
    return _rendered(f"Password Reset - {STORE_NAME}", content)


def render_review_request(data: dict) -> dict:
    items = "".join(f"<li>{_e(it['name'])}</li>" for it in data.get("items", []))
    content = f"""
<h2>How was your recent purchase?</h2>
<p>Hello {_e(data.get('customer_name') or 'Customer')},</p>
<p>We hope you're enjoying your recent purchase from order #{_e(data['order_number'])}!</p>
<h3>Items from your order:</h3>
<ul>{items}</ul>
<p>Your feedback helps other customers make informed decisions.</p>"""
    return _rendered(
        f"How was your recent purchase? - Order #{data['order_number']}", content, "Review Your Recent Purchase"
    )


def render_low_stock_alert(data: dict) -> dict:
    products = data.get("products", [])
    rows = "".join(
        f"<tr><td>{_e(p['name'])}</td><td>{_e(p['sku'])}</td>"
        f"<td style=\"color:{'#dc3545' if p['in_stock'] == 0 else '#ffc107'}\">{_e(p['in_stock'])}</td>"
        f"<td>{_e(p['reorder_level'])}</td></tr>"
        for p in products
    )
    content = f"""
<h2>Low Stock Alert</h2>
<p>The following products are running low on inventory:</p>
<table>
  <thead><tr><th>Product</th><th>SKU</th><th>Current Stock</th><th>Low Stock Level</th></tr></thead>
  <tbody>{rows}</tbody>
</table>
<p>Please restock these items to avoid stockouts.</p>"""
    return _rendered(
        f"Low Stock Alert - {len(products)} Product(s) Need Attention", content, "Low Stock Alert - Action Required"
    )


TEMPLATE_REGISTRY = {
    NotificationKind.ORDER_CONFIRMATION: render_order_confirmation,
    NotificationKind.ADMIN_NEW_ORDER: render_admin_new_order,
    NotificationKind.SHIPPING_NOTIFICATION: render_shipping_notification,
    NotificationKind.WELCOME: render_welcome,
    NotificationKind.PASSWORD_RESET: render_password_reset,
    NotificationKind.REVIEW_REQUEST: render_review_request,
    NotificationKind.LOW_STOCK_ALERT: render_low_stock_alert,
}


def render(kind: NotificationKind | str, data: dict) -> dict:
    renderer = TEMPLATE_REGISTRY.get(NotificationKind(kind))
    if renderer is None:
        raise ValueError(f"No template registered for notification kind: {kind}")
    return renderer(data)
