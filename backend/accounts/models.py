from django.db import models
from django.contrib.auth.models import AbstractUser


class UserRole(models.TextChoices):
    CLIENT = 'CLIENT', 'Client'
    DELIVERY_PERSON = 'DELIVERY_PERSON', 'Delivery Person'
    ESTABLISHMENT = 'ESTABLISHMENT', 'Establishment'
    ADMIN = 'ADMIN', 'Administrator'


class User(AbstractUser):
    """Extended user model with a closed role enumeration"""

    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.CLIENT)
    phone_number = models.CharField(max_length=20, blank=True)
    completed_deliveries = models.IntegerField(default=0)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_delivery_person(self) -> bool:
        return self.role == UserRole.DELIVERY_PERSON

    @property
    def is_admin_role(self) -> bool:
        return self.role == UserRole.ADMIN or self.is_superuser
