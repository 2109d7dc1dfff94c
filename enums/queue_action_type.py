from enum import Enum


class QueueActionType(str, Enum):
    """Mutation kinds recorded while the device is offline."""

    CART_ADD = "cart_add"
    CART_UPDATE = "cart_update"
    CART_REMOVE = "cart_remove"
    CHECKOUT = "checkout"
