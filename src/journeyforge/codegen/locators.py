"""Rendering of locators and values as Playwright (Python, sync API) expressions."""

import json

from journeyforge.domain.models import LocatorSpec, LocatorStrategy, ValueKind, ValueSpec


def py_str(value: str) -> str:
    """Render a Python string literal (double-quoted, deterministic)."""
    return json.dumps(value, ensure_ascii=False)


def render_locator(locator: LocatorSpec, page: str = "page") -> str:
    """
    Render a locator expression.

    Example:
        LocatorSpec(ROLE, "button", name="Sign in") ->
        page.get_by_role("button", name="Sign in")
    """
    exact = ", exact=True" if locator.exact else ""
    if locator.strategy is LocatorStrategy.TEST_ID:
        expr = f"{page}.get_by_test_id({py_str(locator.value)})"
    elif locator.strategy is LocatorStrategy.ROLE:
        options = ""
        if locator.name is not None:
            options += f", name={py_str(locator.name)}"
        if locator.level is not None:
            options += f", level={locator.level}"
        expr = f"{page}.get_by_role({py_str(locator.value)}{options}{exact})"
    elif locator.strategy is LocatorStrategy.LABEL:
        expr = f"{page}.get_by_label({py_str(locator.value)}{exact})"
    elif locator.strategy is LocatorStrategy.PLACEHOLDER:
        expr = f"{page}.get_by_placeholder({py_str(locator.value)}{exact})"
    elif locator.strategy is LocatorStrategy.TEXT:
        expr = f"{page}.get_by_text({py_str(locator.value)}{exact})"
    else:
        expr = f"{page}.locator({py_str(locator.value)})"

    if locator.nth == 0:
        expr += ".first"
    elif locator.nth is not None:
        expr += f".nth({locator.nth})"
    return expr


def render_value(value: ValueSpec) -> str:
    """
    Render a value expression.

    Generated values are namespaced with the run id at execution time;
    contextual values are read from the environment.
    """
    if value.kind is ValueKind.GENERATED:
        return f"unique_value({py_str(value.value)})"
    if value.kind is ValueKind.CONTEXTUAL:
        return f"context_value({py_str(value.value)})"
    return py_str(value.value)
