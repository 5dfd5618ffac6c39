"""Built-in domain guidance blocks.

Each keyword block scores itself by summing the weights of the rules whose
pattern is found in the endpoint path, operation id or minified schema.
"""

import re

from .base import ContextBlock, EndpointInfo

SINGLE_RESOURCE = re.compile(r"/(\{[^}]+\}|:\w+|\d+)(/|$)")


class KeywordBlock(ContextBlock):
    """Base for blocks scored by (field, pattern, weight) rules."""

    block_id = ""
    # (EndpointInfo attribute, regex, weight)
    rules: tuple[tuple[str, str, float], ...] = ()

    @property
    def id(self) -> str:
        return self.block_id

    def score(self, info: EndpointInfo) -> float:
        total = 0.0
        for attr, pattern, weight in self.rules:
            if re.search(pattern, getattr(info, attr) or "", re.IGNORECASE):
                total += weight
        return min(1.0, total)


def _is_single(info: EndpointInfo) -> bool:
    return bool(SINGLE_RESOURCE.search(info.path.lower()))


class CommerceProductsBlock(KeywordBlock):
    block_id = "commerce.products.v1"
    rules = (
        ("path", r"\b(products?|items?|catalog|inventory)\b", 0.35),
        ("operation_id", r"(product|catalog|inventory|list)", 0.20),
        ("json_schema", r"\b(price|currency|sku|upc|isbn|brand|model|category)\b", 0.35),
        ("json_schema", r'"type":\s*"array".*"items"', 0.05),
    )

    def render(self, info: EndpointInfo) -> str:
        if info.method.upper() == "POST":
            heading, example = "Example of product creation response:", CREATED_PRODUCT_EXAMPLE
        elif _is_single(info):
            heading, example = "Example of excellent single product response:", SINGLE_PRODUCT_EXAMPLE
        else:
            heading, example = "Example of excellent product list:", PRODUCT_LIST_EXAMPLE

        return (
            "PRODUCTS CONTEXT:\n"
            f"{heading}\n{example}"
            "\nRules for your response:\n"
            "- Use real product names and specs like the example\n"
            "- Descriptions must be specific (chipset, materials, capacity)\n"
            "- Prices realistic and varied ($9.99-$1,999.00)\n"
            "- Each product must be unique - no duplicates or placeholders\n"
        )


class OrdersBlock(KeywordBlock):
    block_id = "commerce.orders.v1"
    rules = (
        ("path", r"\b(orders?|transactions?|payments?)\b", 0.35),
        ("operation_id", r"(order|checkout|payment|transaction)", 0.20),
        ("json_schema", r"\b(status|total|shipping|billing|paymentMethod|lineItems)\b", 0.35),
        ("json_schema", r"\b(currency|amount|tax|discount)\b", 0.10),
    )

    def render(self, info: EndpointInfo) -> str:
        return (
            "ORDERS CONTEXT:\n"
            f"Example of excellent order response:\n{ORDER_EXAMPLE}"
            "\nRules for your response:\n"
            "- Order IDs like ORD-2024-xxxxx or uuid format\n"
            "- Include customer reference, items array, shipping, payment\n"
            "- Status: pending/processing/shipped/delivered/cancelled\n"
            "- Dates in ISO-8601 format\n"
            "- Total = sum(items) + shipping + tax\n"
        )


class PeopleBlock(KeywordBlock):
    block_id = "people.users.v1"
    rules = (
        ("path", r"\b(users?|customers?|people|persons?)\b", 0.35),
        ("operation_id", r"(user|customer|person|account)", 0.20),
        ("json_schema", r"\b(email|firstName|lastName|phone|address|dob|profile)\b", 0.35),
        ("json_schema", r"\b(country|postalCode|zip|city|state|province)\b", 0.10),
    )

    def render(self, info: EndpointInfo) -> str:
        if _is_single(info):
            heading, example = "Example of excellent user response:", SINGLE_USER_EXAMPLE
        else:
            heading, example = "Example of excellent user list:", USER_LIST_EXAMPLE

        return (
            "USERS CONTEXT:\n"
            f"{heading}\n{example}"
            "\nRules for your response:\n"
            "- Use realistic names from diverse backgrounds\n"
            "- Emails must be valid (firstname.lastname@domain.com)\n"
            "- Phone numbers in proper format (+1-555-0123)\n"
            "- Dates in ISO-8601 format\n"
        )


class FinanceBlock(KeywordBlock):
    block_id = "finance.accounts.v1"
    rules = (
        ("path", r"\b(accounts?|ledgers?|balances?|bank|finance|payments?)\b", 0.30),
        ("operation_id", r"(account|balance|ledger|payment|payout|invoice)", 0.20),
        ("json_schema", r"\b(iban|bic|swift|routing|accountNumber|currency|amount)\b", 0.40),
        ("json_schema", r"\b(statement|transactionDate)\b", 0.10),
    )

    def render(self, info: EndpointInfo) -> str:
        return (
            "FINANCE CONTEXT:\n"
            "- Use valid ISO 4217 currency codes; amounts with 2 decimals where applicable.\n"
            "- Bank fields realistic (IBAN/BIC/SWIFT formats); mask sensitive numbers.\n"
            "- Dates and value dates in ISO-8601 with time zones.\n"
        )


class AuthBlock(KeywordBlock):
    block_id = "auth.tokens.v1"
    rules = (
        ("path", r"\b(auth|oauth|login|token|sessions?)\b", 0.35),
        ("operation_id", r"(auth|oauth|token|session|signin|login|refresh)", 0.25),
        ("json_schema", r"\b(access_token|refresh_token|expires_in|scope|claims|aud|iss|sub)\b", 0.35),
        ("json_schema", r"\b(jwk|kid|alg)\b", 0.05),
    )

    def render(self, info: EndpointInfo) -> str:
        return (
            "AUTH CONTEXT:\n"
            "- Use realistic JWTs (header/payload/exp/iat), plausible scopes/claims.\n"
            "- Never include real secrets; keys and tokens must be non-sensitive mock values.\n"
        )


class GenericStructuredDataBlock(ContextBlock):
    """Fallback used when no domain block is relevant enough."""

    @property
    def id(self) -> str:
        return "generic.structured.v1"

    def score(self, info: EndpointInfo) -> float:
        return 0.1

    def render(self, info: EndpointInfo) -> str:
        return (
            "GENERIC CONTEXT:\n"
            "- Use realistic, domain-appropriate values; no placeholders.\n"
            "- Honor formats/enums (email, uuid, date-time, country codes).\n"
            "- Arrays must be diverse; respect min/max constraints in schema when present.\n"
        )


def builtin_blocks() -> list[ContextBlock]:
    return [
        CommerceProductsBlock(),
        OrdersBlock(),
        PeopleBlock(),
        FinanceBlock(),
        AuthBlock(),
        GenericStructuredDataBlock(),
    ]


SINGLE_PRODUCT_EXAMPLE = """{
  "id": "prod-789456",
  "name": "Sony WH-1000XM5 Wireless Headphones",
  "description": "Industry-leading noise canceling with Auto NC Optimizer, 30-hour battery life",
  "price": 399.99,
  "category": "Electronics",
  "brand": "Sony",
  "sku": "SNY-WH1000XM5-BLK",
  "inStock": true,
  "rating": 4.7
}
"""

PRODUCT_LIST_EXAMPLE = """[
  {"id": "prod-001", "name": "MacBook Air 15-inch M2", "price": 1299.00, "category": "Computers", "brand": "Apple"},
  {"id": "prod-002", "name": "Samsung Galaxy S24 Ultra", "price": 1199.99, "category": "Smartphones", "brand": "Samsung"}
]
"""

CREATED_PRODUCT_EXAMPLE = """{
  "id": "prod-new-8934",
  "name": "iPad Pro 12.9-inch M2",
  "status": "created",
  "createdAt": "2024-01-25T09:15:30Z"
}
"""

ORDER_EXAMPLE = """{
  "orderId": "ORD-2024-78234",
  "customerId": "usr-456789",
  "orderDate": "2024-01-25T14:30:00Z",
  "status": "processing",
  "items": [{"productId": "prod-789", "productName": "Sony WH-1000XM5", "quantity": 1, "unitPrice": 399.99}],
  "totals": {"subtotal": 399.99, "shipping": 12.99, "tax": 35.00, "total": 447.98}
}
"""

SINGLE_USER_EXAMPLE = """{
  "id": "usr-456789",
  "email": "sarah.johnson@techcorp.com",
  "firstName": "Sarah",
  "lastName": "Johnson",
  "phoneNumber": "+1-415-555-0142",
  "accountStatus": "active",
  "createdAt": "2022-01-10T08:00:00Z"
}
"""

USER_LIST_EXAMPLE = """[
  {"id": "usr-001", "email": "john.smith@example.com", "name": "John Smith", "role": "customer"},
  {"id": "usr-002", "email": "maria.garcia@example.com", "name": "Maria Garcia", "role": "premium"}
]
"""
