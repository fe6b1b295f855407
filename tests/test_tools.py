"""Tests for customer tool definitions and call validation."""

import pytest

from reply_orchestrator.orchestrator.errors import ToolArgumentError
from reply_orchestrator.orchestrator.tools import (
    CUSTOMER_TOOL_DEFINITIONS,
    AddToCartCall,
    CheckOrderStatusCall,
    RequestDiscountCall,
    validate_tool_call,
)
from reply_orchestrator.services.base import ToolCall


def test_tool_definitions_use_camel_case_parameters():
    by_name = {tool["name"]: tool for tool in CUSTOMER_TOOL_DEFINITIONS}

    assert set(by_name) == {
        "add_to_cart", "checkout", "show_product_carousel", "request_discount", "check_order_status"
    }
    cart = by_name["add_to_cart"]["parameters"]
    assert set(cart["required"]) == {"productId", "productName", "price"}
    assert "title" not in cart
    assert "title" not in cart["properties"]["productId"]


def test_add_to_cart_call_is_validated_and_defaulted():
    call = validate_tool_call(ToolCall(
        id="call_1",
        name="add_to_cart",
        arguments={"productId": "item_red", "productName": "Red Dress", "price": 50}
    ))

    assert isinstance(call, AddToCartCall)
    assert call.arguments.product_id == "item_red"
    assert call.arguments.quantity == 1


def test_optional_arguments_may_be_omitted():
    call = validate_tool_call(ToolCall(id="call_2", name="check_order_status", arguments={}))

    assert isinstance(call, CheckOrderStatusCall)
    assert call.arguments.order_id is None


def test_discount_percentage_bounds():
    ok = validate_tool_call(ToolCall(
        id="call_3",
        name="request_discount",
        arguments={"productId": "item_red", "productName": "Red Dress", "requestedDiscountPercentage": 10}
    ))
    assert isinstance(ok, RequestDiscountCall)

    with pytest.raises(ToolArgumentError):
        validate_tool_call(ToolCall(
            id="call_4",
            name="request_discount",
            arguments={"productId": "item_red", "productName": "Red Dress", "requestedDiscountPercentage": 150}
        ))


def test_unknown_tool_is_rejected():
    with pytest.raises(ToolArgumentError) as exc_info:
        validate_tool_call(ToolCall(id="call_5", name="refund_everything", arguments={}))

    assert exc_info.value.context["tool_call_id"] == "call_5"


def test_missing_and_extra_arguments_are_rejected():
    with pytest.raises(ToolArgumentError):
        validate_tool_call(ToolCall(id="call_6", name="checkout", arguments={}))

    with pytest.raises(ToolArgumentError):
        validate_tool_call(ToolCall(
            id="call_7",
            name="checkout",
            arguments={"customerPhone": "+212600000000", "coupon": "FREE"}
        ))
