from enum import Enum


class NotificationKind(str, Enum):
    ORDER_CONFIRMATION = "order-confirmation"
    ADMIN_NEW_ORDER = "admin-new-order"
    SHIPPING_NOTIFICATION = "shipping-notification"
    WELCOME = "welcome"
    PASSWORD_RESET = "password-reset"
    REVIEW_REQUEST = "review-request"
    LOW_STOCK_ALERT = "low-stock-alert"


# Kinds whose recipient defaults to the configured admin address.
ADMIN_KINDS = {NotificationKind.ADMIN_NEW_ORDER, NotificationKind.LOW_STOCK_ALERT}
