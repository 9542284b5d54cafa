from .auth import User, SessionToken
from .catalog import Category, Product, ProductTag, Tag
from .customers import Address, Cart, CartItem
from .orders import Order, OrderDetail
from .payments import Payment

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'Tag', 'ProductTag',
    'Address', 'Cart', 'CartItem',
    'Order', 'OrderDetail',
    'Payment',
]
