#!/usr/bin/env python3
"""
Postprocessing module for the chatdesk backend.

This module renders product lists into chat-ready text for both locales.
"""

from typing import Iterable

_TEXT = {
    "zh": {
        "none": "抱歉，我找不到相關的產品。請提供更多資訊或聯絡我們的客服人員。",
        "header": "我找到了以下產品：",
        "code": "產品編號",
        "size": "規格",
        "box": "箱規",
        "price": "批發價",
        "footer": "如需訂購或了解更多資訊，請告訴我產品編號和數量。",
    },
    "en": {
        "none": "Sorry, I could not find any related products. "
                "Please provide more information or contact our customer service.",
        "header": "I found the following products:",
        "code": "Product Code",
        "size": "Size",
        "box": "Box Spec",
        "price": "Wholesale Price",
        "footer": "To place an order or learn more, please tell me the product code and quantity.",
    },
}


def format_price(price) -> str:
    value = float(price)
    return str(int(value)) if value.is_integer() else f"{value:.2f}".rstrip("0")


def format_products_for_chat(products: Iterable, language: str = "zh") -> str:
    """
    Format products for display in chat.

    Args:
        products: Product rows or ProductSummary objects
        language: 'zh' or 'en'

    Returns:
        Localized text; a fixed apology when there are no products
    """
    text = _TEXT["en" if language == "en" else "zh"]
    products = list(products)
    if not products:
        return text["none"]

    lines = [text["header"], ""]
    for index, product in enumerate(products, 1):
        if language == "en":
            primary = product.product_name_english or product.product_name_chinese
            secondary = product.product_name_chinese if product.product_name_english else None
        else:
            primary = product.product_name_chinese
            secondary = product.product_name_english

        lines.append(f"{index}. **{primary}**")
        if secondary:
            lines.append(f"   {secondary}")
        lines.append(f"   {text['code']}: {product.product_code}")
        if product.size:
            lines.append(f"   {text['size']}: {product.size}")
        if product.box_specification:
            lines.append(f"   {text['box']}: {product.box_specification}")
        if product.wholesale_price:
            lines.append(f"   {text['price']}: HKD ${format_price(product.wholesale_price)}")
        lines.append("")

    lines.append(text["footer"])
    return "\n".join(lines)
