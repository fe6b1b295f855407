"""
Customer Tools
Native tool definitions offered to the response generator, and
validation of the tool calls the model returns.

Each tool has its own argument model; a call is validated into a tagged
union keyed by the tool name before the caller executes it.
"""

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from reply_orchestrator.orchestrator.errors import ToolArgumentError
from reply_orchestrator.services.base import ToolCall

logger = logging.getLogger(__name__)


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class AddToCartArgs(_ToolArgs):
    product_id: str = Field(
        alias="productId",
        description="The exact ID of the item the customer wants to buy. Found in the Knowledge Base."
    )
    product_name: str = Field(alias="productName", description="Name of the product")
    price: float = Field(description="Price of the product")
    quantity: int = Field(default=1, ge=1, description="Number of units")


class CheckoutArgs(_ToolArgs):
    customer_phone: str = Field(alias="customerPhone", description="The customer's phone number")
    delivery_address: Optional[str] = Field(
        default=None, alias="deliveryAddress", description="Delivery address if applicable"
    )
    notes: Optional[str] = Field(default=None, description="Additional order notes from the customer")


class ShowProductCarouselArgs(_ToolArgs):
    item_ids: List[str] = Field(
        alias="itemIds", description="Array of Knowledge Base item IDs to show in the carousel"
    )


class RequestDiscountArgs(_ToolArgs):
    product_id: str = Field(
        alias="productId", description="The ID of the item the customer wants a discount on"
    )
    product_name: str = Field(alias="productName", description="Name of the product")
    requested_discount_percentage: float = Field(
        alias="requestedDiscountPercentage",
        ge=1,
        le=100,
        description="The numerical percentage discount the customer is asking for (e.g. 10 for 10%)"
    )


class CheckOrderStatusArgs(_ToolArgs):
    order_id: Optional[str] = Field(
        default=None,
        alias="orderId",
        description="The specific order ID, if the customer provided one (otherwise leave blank to find their latest order)"
    )


# ===== Tagged union =====

class AddToCartCall(BaseModel):
    id: str
    name: Literal["add_to_cart"]
    arguments: AddToCartArgs


class CheckoutCall(BaseModel):
    id: str
    name: Literal["checkout"]
    arguments: CheckoutArgs


class ShowProductCarouselCall(BaseModel):
    id: str
    name: Literal["show_product_carousel"]
    arguments: ShowProductCarouselArgs


class RequestDiscountCall(BaseModel):
    id: str
    name: Literal["request_discount"]
    arguments: RequestDiscountArgs


class CheckOrderStatusCall(BaseModel):
    id: str
    name: Literal["check_order_status"]
    arguments: CheckOrderStatusArgs


CustomerToolCall = Annotated[
    Union[AddToCartCall, CheckoutCall, ShowProductCarouselCall, RequestDiscountCall, CheckOrderStatusCall],
    Field(discriminator="name")
]

_tool_call_adapter = TypeAdapter(CustomerToolCall)


TOOL_DESCRIPTIONS: Dict[str, str] = {
    "add_to_cart": (
        "Add an item from the Knowledge Base to the customer's virtual shopping cart. "
        "Call this the moment a customer says they want a specific item (e.g. 'I want the red one', "
        "'size M please', 'I'll take it'). Do NOT wait for them to say 'add to cart'."
    ),
    "checkout": (
        "Complete the order process. Call this ONLY AFTER the cart has items AND you have "
        "collected the customer's phone number."
    ),
    "show_product_carousel": (
        "Display a visual carousel of products to the customer. Call this when the customer asks to "
        "see options, browse products, or asks what you have available, and you have found relevant "
        "items in the Knowledge Base."
    ),
    "request_discount": (
        "Request manager approval for a discount. Call this ONLY when a customer directly asks for a "
        "discount that is NOT already in your Knowledge Base. You cannot authorize unlisted discounts yourself."
    ),
    "check_order_status": (
        "Check the status and tracking URL of an existing order. Call this when the customer asks "
        "'Where is my order?', 'Has my stuff shipped?', or similar."
    ),
}

TOOL_ARGUMENT_MODELS: Dict[str, Type[_ToolArgs]] = {
    "add_to_cart": AddToCartArgs,
    "checkout": CheckoutArgs,
    "show_product_carousel": ShowProductCarouselArgs,
    "request_discount": RequestDiscountArgs,
    "check_order_status": CheckOrderStatusArgs,
}


def _parameters_schema(model: Type[_ToolArgs]) -> Dict[str, Any]:
    schema = model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def build_tool_definitions() -> List[Dict[str, Any]]:
    """Tool definitions in the bare {name, description, parameters} form."""
    return [
        {
            "name": name,
            "description": TOOL_DESCRIPTIONS[name],
            "parameters": _parameters_schema(model)
        }
        for name, model in TOOL_ARGUMENT_MODELS.items()
    ]


CUSTOMER_TOOL_DEFINITIONS = build_tool_definitions()


def validate_tool_call(tool_call: ToolCall) -> CustomerToolCall:
    """
    Validate a model-issued tool call against its tool's argument schema.

    Args:
        tool_call: Raw call from the backend

    Returns:
        Typed call (AddToCartCall, CheckoutCall, ...)

    Raises:
        ToolArgumentError: Unknown tool or invalid arguments
    """
    if tool_call.name not in TOOL_ARGUMENT_MODELS:
        raise ToolArgumentError(
            f"Unknown tool '{tool_call.name}'",
            context={"tool_call_id": tool_call.id}
        )
    try:
        return _tool_call_adapter.validate_python(tool_call.model_dump())
    except ValidationError as e:
        logger.warning(f"Invalid arguments for tool '{tool_call.name}': {e.error_count()} error(s)")
        raise ToolArgumentError(
            f"Invalid arguments for tool '{tool_call.name}'",
            context={"tool_call_id": tool_call.id, "errors": e.errors(include_url=False)},
            cause=e
        ) from e
