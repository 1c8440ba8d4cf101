from models.user import User
from models.restaurant import Restaurant
from models.menu_management import Category, MenuItem
from models.order_management import Order, OrderItem

# Register all models
__all__ = ['User', 'Restaurant', 'Category', 'MenuItem', 'Order', 'OrderItem']
