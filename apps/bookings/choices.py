"""
Enumerations shared by the booking flow.
"""
from django.db import models


class PaymentMethod(models.TextChoices):
    CARD        = 'card',        'Credit/Debit Card'
    PAYPAL      = 'paypal',      'PayPal'
    PAY_ON_SITE = 'pay_on_site', 'Pay at Hospital'


class HospitalType(models.TextChoices):
    GOVERNMENT = 'Government', 'Government'
    PRIVATE    = 'Private',    'Private'


class StepStatus(models.TextChoices):
    PENDING  = 'pending',  'Pending'
    CURRENT  = 'current',  'Current'
    COMPLETE = 'complete', 'Complete'
