"""
Helper Utilities
Common helper functions
"""

from typing import Optional


def format_currency(amount: float, currency: str = "INR") -> str:
    """
    Format amount as currency

    Args:
        amount: Amount to format
        currency: Currency code

    Returns:
        str: Formatted currency string
    """
    if currency == "INR":
        return f"₹{amount:,.2f}"
    return f"{currency} {amount:,.2f}"


def format_percentage(value: float) -> str:
    """Format a percentage without trailing zeros (90 -> '90%', 87.5 -> '87.5%')"""
    return f"{value:g}%"


def role_title(value: str) -> str:
    """Display label of a system role value ('business_head' -> 'Business Head')"""
    return value.replace("_", " ").title()


def clean_comment(comment: Optional[str]) -> Optional[str]:
    """Strip a decision comment, returning None when blank"""
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None
