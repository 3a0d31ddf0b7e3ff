from .coverage import CoverageArea, CoverageAreaPostalCode, Agent
from .subscriptions import Address, Subscription, SubscriptionProduct
from .deliveries import Delivery, DeliveryEvent

__all__ = [
    'CoverageArea', 'CoverageAreaPostalCode', 'Agent',
    'Address', 'Subscription', 'SubscriptionProduct',
    'Delivery', 'DeliveryEvent',
]
