"""Status vocabularies shared by the ORM, the API schemas and the status machine."""

import enum


class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    CANCELED = "Canceled"


class DeliveryStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPING = "Shipping"
    SHIPPED = "Shipped"
    CANCELED = "Canceled"


class OrderStatus(str, enum.Enum):
    """Aggregate status, derived from payment and delivery status."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELED = "Canceled"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    SHIPPER = "shipper"
