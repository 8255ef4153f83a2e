"""
================================================================================
Test Data Factory
================================================================================

This module provides factory classes for generating test data.
Every call returns a new, independent record whose fields can be overridden
by keyword (shallow merge, override wins).

Features:
- Realistic values from Faker
- Per-instance random generator (reproducible with a seed, no shared state)
- Wire-format (camelCase) keys matching the API under test
- Pagination envelopes and predefined data sets

================================================================================
"""

import math
import re
import string
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from faker import Faker


# ================================================================================
# Factory Base
# ================================================================================

class DataFactoryBase:
    """
    Base class for test data factories.

    Each instance owns a Faker with its own random generator, so instances
    can be used from parallel tests without coordination.
    """

    # Domain for all auto-generated email addresses
    EMAIL_DOMAIN = "test.example.com"

    def __init__(self, seed: Optional[int] = None, locale: str = "en_US"):
        """
        Initialize factory with optional random seed.

        Args:
            seed: Random seed for reproducible data generation
            locale: Faker locale
        """
        self.faker = Faker(locale)
        self.faker.seed_instance(seed)

    @staticmethod
    def _merge(data: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        data.update(overrides)
        return data

    @staticmethod
    def _slug(text: str) -> str:
        return re.sub(r"[^a-z0-9]", "", text.lower())

    def random_string(self, length: int = 10) -> str:
        """Generate random alphanumeric string."""
        return self.faker.lexify(
            "?" * length, letters=string.ascii_letters + string.digits
        )

    def random_number(self, min_value: int = 1, max_value: int = 100) -> int:
        """Generate random integer in [min_value, max_value]."""
        return self.faker.random_int(min=min_value, max=max_value)

    def random_email(self) -> str:
        """Generate a unique email address."""
        first = self._slug(self.faker.first_name())
        last = self._slug(self.faker.last_name())
        return f"{first}.{last}.{uuid4().hex[:8]}@{self.EMAIL_DOMAIN}"

    def random_phone(self) -> str:
        """Generate an international phone number (+ and 13 digits)."""
        return f"+{self.faker.msisdn()}"

    def random_date(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        """Generate an ISO-8601 UTC timestamp between start and end."""
        start = start or datetime(2020, 1, 1, tzinfo=timezone.utc)
        end = end or datetime.now(timezone.utc)
        moment = self.faker.date_time_between(
            start_date=start, end_date=end, tzinfo=timezone.utc
        )
        return moment.isoformat()

    def random_price(self, min_cents: int = 100, max_cents: int = 99999) -> float:
        return round(self.faker.random_int(min=min_cents, max=max_cents) / 100, 2)

    def random_choice(self, options: Sequence[Any]) -> Any:
        """Select random item from a sequence."""
        return self.faker.random_element(options)

    def random_address(self) -> Dict[str, Any]:
        return {
            "street": self.faker.street_address(),
            "city": self.faker.city(),
            "state": self.faker.state(),
            "zipCode": self.faker.zipcode(),
            "country": self.faker.country(),
        }


# ================================================================================
# Address / User / Auth Factories
# ================================================================================

class AddressFactory(DataFactoryBase):
    """Factory for postal address records."""

    def create(self, **overrides) -> Dict[str, Any]:
        return self._merge(self.random_address(), overrides)


class UserFactory(DataFactoryBase):
    """
    Factory for generating user test data.

    Used for registration, user management and permission testing.
    """

    def create(self, **overrides) -> Dict[str, Any]:
        """
        Create valid user data.

        Args:
            **overrides: Field overrides (e.g. email="a@b.com")

        Returns:
            Valid user data dictionary
        """
        first_name = self.faker.first_name()
        last_name = self.faker.last_name()

        data = {
            "id": self.faker.uuid4(),
            "email": self.random_email(),
            "password": self.generate_password(),
            "firstName": first_name,
            "lastName": last_name,
            "username": f"{self._slug(first_name)}_{self.random_string(6).lower()}",
            "phone": self.random_phone(),
            "dateOfBirth": self.faker.date_of_birth(minimum_age=18, maximum_age=80).isoformat(),
            "address": self.random_address(),
        }
        return self._merge(data, overrides)

    def create_minimal(self, **overrides) -> Dict[str, Any]:
        """Create user with only the fields the API requires."""
        data = {
            "email": self.random_email(),
            "password": self.generate_password(),
            "firstName": self.faker.first_name(),
            "lastName": self.faker.last_name(),
        }
        return self._merge(data, overrides)

    def generate_password(self, length: int = 12) -> str:
        """Password with upper, lower, digit and special characters."""
        return self.faker.password(
            length=length,
            special_chars=True,
            digits=True,
            upper_case=True,
            lower_case=True,
        )


class AuthFactory(UserFactory):
    """Factory for login/registration credentials."""

    def create(self, **overrides) -> Dict[str, Any]:
        data = {
            "email": self.random_email(),
            "password": self.generate_password(),
        }
        return self._merge(data, overrides)


# ================================================================================
# Product / Order Factories
# ================================================================================

class ProductFactory(DataFactoryBase):
    """Factory for catalogue product records."""

    ADJECTIVES = ["Small", "Ergonomic", "Rustic", "Intelligent", "Sleek", "Practical", "Refined"]
    MATERIALS = ["Steel", "Wooden", "Concrete", "Plastic", "Cotton", "Granite", "Rubber"]
    PRODUCTS = ["Chair", "Car", "Computer", "Keyboard", "Mouse", "Table", "Shoes", "Gloves"]
    DEPARTMENTS = ["Books", "Electronics", "Garden", "Home", "Sports", "Toys", "Outdoors"]

    def create(self, **overrides) -> Dict[str, Any]:
        name = " ".join([
            self.random_choice(self.ADJECTIVES),
            self.random_choice(self.MATERIALS),
            self.random_choice(self.PRODUCTS),
        ])
        data = {
            "id": self.faker.uuid4(),
            "name": name,
            "description": self.faker.sentence(nb_words=12),
            "price": self.random_price(),
            "category": self.random_choice(self.DEPARTMENTS),
            "sku": self.faker.lexify("?" * 10, letters=string.ascii_uppercase + string.digits),
            "inStock": self.faker.pybool(),
            "quantity": self.random_number(0, 1000),
        }
        return self._merge(data, overrides)


class OrderFactory(DataFactoryBase):
    """Factory for order records with line items and a shipping address."""

    STATUSES = ["pending", "processing", "shipped", "delivered", "cancelled"]

    def create(self, **overrides) -> Dict[str, Any]:
        items = [
            {
                "productId": self.faker.uuid4(),
                "quantity": self.random_number(1, 10),
                "price": self.random_price(),
            }
            for _ in range(self.random_number(1, 5))
        ]
        data = {
            "id": self.faker.uuid4(),
            "userId": self.faker.uuid4(),
            "items": items,
            "total": round(sum(i["price"] * i["quantity"] for i in items), 2),
            "status": self.random_choice(self.STATUSES),
            "shippingAddress": self.random_address(),
        }
        return self._merge(data, overrides)


# ================================================================================
# Response Shape Factories
# ================================================================================

class ErrorResponseFactory(DataFactoryBase):
    """Factory for API error bodies."""

    CODES = ["VALIDATION_ERROR", "AUTHENTICATION_ERROR", "NOT_FOUND", "INTERNAL_ERROR"]

    def create(self, **overrides) -> Dict[str, Any]:
        data = {
            "error": {
                "code": self.random_choice(self.CODES),
                "message": self.faker.sentence(),
                "details": self.faker.paragraph(),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
        return self._merge(data, overrides)


def paginate(items: Sequence[Any], page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """
    Wrap a slice of items in a pagination envelope.

    Args:
        items: Full item list
        page: 1-based page number
        limit: Page size

    Returns:
        {"data": [...], "pagination": {page, limit, total, totalPages, hasNext, hasPrev}}
    """
    total = len(items)
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    start = (page - 1) * limit

    return {
        "data": list(items[start:start + limit]),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


# ================================================================================
# Composite Factory
# ================================================================================

class DataFactory:
    """
    Composite factory providing access to all data factories.

    Usage:
        factory = DataFactory()
        user = factory.user.create(email="someone@test.example.com")
        order = factory.order.create(status="pending")
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize all factories.

        Args:
            seed: Optional random seed for reproducibility
        """
        # each factory gets its own stream so seeded runs do not repeat values
        def _seed(offset: int) -> Optional[int]:
            return None if seed is None else seed + offset

        self.address = AddressFactory(_seed(0))
        self.user = UserFactory(_seed(1))
        self.auth = AuthFactory(_seed(2))
        self.product = ProductFactory(_seed(3))
        self.order = OrderFactory(_seed(4))
        self.error_response = ErrorResponseFactory(_seed(5))

    @staticmethod
    def paginate(items: Sequence[Any], page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return paginate(items, page, limit)


# ================================================================================
# Convenience Functions
# ================================================================================

def generate_user(**overrides) -> Dict[str, Any]:
    """Quick helper to create valid user data."""
    return UserFactory().create(**overrides)


def generate_auth_data(**overrides) -> Dict[str, Any]:
    """Quick helper to create login credentials."""
    return AuthFactory().create(**overrides)


def generate_address(**overrides) -> Dict[str, Any]:
    return AddressFactory().create(**overrides)


def generate_product(**overrides) -> Dict[str, Any]:
    return ProductFactory().create(**overrides)


def generate_order(**overrides) -> Dict[str, Any]:
    return OrderFactory().create(**overrides)


def generate_error_response(**overrides) -> Dict[str, Any]:
    return ErrorResponseFactory().create(**overrides)


def build_data_sets(seed: Optional[int] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Predefined valid/invalid records for data-driven tests."""
    factory = DataFactory(seed)
    return {
        "valid_users": [
            factory.user.create(email="john.doe@example.com"),
            factory.user.create(email="jane.smith@example.com"),
            factory.user.create(email="bob.wilson@example.com"),
        ],
        "invalid_users": [
            factory.user.create(email="invalid-email"),
            factory.user.create(firstName=""),
            factory.user.create(phone="invalid-phone"),
        ],
        "valid_products": [
            factory.product.create(name="Test Product 1"),
            factory.product.create(name="Test Product 2"),
            factory.product.create(name="Test Product 3"),
        ],
        "valid_orders": [
            factory.order.create(status="pending"),
            factory.order.create(status="processing"),
            factory.order.create(status="shipped"),
        ],
    }


__all__ = [
    "AddressFactory",
    "AuthFactory",
    "DataFactory",
    "DataFactoryBase",
    "ErrorResponseFactory",
    "OrderFactory",
    "ProductFactory",
    "UserFactory",
    "build_data_sets",
    "generate_address",
    "generate_auth_data",
    "generate_error_response",
    "generate_order",
    "generate_product",
    "generate_user",
    "paginate",
]
