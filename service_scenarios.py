"""
🛒 Catalog / Cart / Frontend Workflows
======================================
Scenario functions for the shop services: catalog browsing, cart operations
and the frontend. Each workflow runs its steps in order, checks every
response and records per-operation trends next to the built-in request
metrics.

All randomness (product, user, quantity, the occasional cart clear) comes
from `ctx.rng`, so a seeded run replays the same choices.
"""

from typing import Any, Dict

from stress_scenarios import ScenarioContext

PRODUCT_IDS = [
    "OLJCESPC7Z",
    "66VCHSJNUP",
    "1YMWWN1N4O",
    "2ZYFJ3GM2N",
    "0PUK6V6EV0",
    "LS4PSXUNUM",
    "9SIQT8TOJO",
    "6E92ZMYYFZ",
    "L9ECAV7KIM",
    "2LS3EF2PRP",
]

USER_IDS = [f"user-{i:03d}" for i in range(1, 11)]

SEARCH_TERMS = [
    "phone", "laptop", "camera", "watch", "speaker",
    "headphone", "tablet", "keyboard", "mouse", "monitor",
]

CATEGORIES = ["electronics"]

# Pause between workflow steps, in seconds
STEP_PAUSE = (1.0, 3.0)
CLEAR_CART_PROBABILITY = 0.3

JSON_HEADERS = {"Content-Type": "application/json"}

# Per-operation trends (milliseconds)
CATALOG_RESPONSE_TIME = "catalog_response_time"
PRODUCT_SEARCH_TIME = "product_search_time"
PRODUCT_DETAIL_TIME = "product_detail_time"
CART_RESPONSE_TIME = "cart_response_time"
ADD_ITEM_TIME = "add_item_time"
GET_CART_TIME = "get_cart_time"
REMOVE_ITEM_TIME = "remove_item_time"
CLEAR_CART_TIME = "clear_cart_time"
OVERALL_RESPONSE_TIME = "overall_response_time"
ERRORS = "errors"


def cart_item(product_id: str, quantity: int) -> Dict[str, Any]:
    return {"product_id": product_id, "quantity": quantity}


def _track(ctx: ScenarioContext, response, trend: str):
    ctx.metrics.record_duration(trend, response.elapsed_ms)
    ctx.metrics.record_bool(ERRORS, not response.ok)


def _status_ok(r) -> bool:
    return r.status == 200


def _faster_than(limit_ms: float):
    return lambda r: r.status != 0 and r.elapsed_ms < limit_ms


def _body_is_cart_of(user_id: str):
    def predicate(r) -> bool:
        body = r.json()
        return body["user_id"] == user_id and isinstance(body["items"], list)
    return predicate


def _body_user_is(user_id: str):
    return lambda r: r.json()["user_id"] == user_id


# =============================================================================
# CATALOG
# =============================================================================

async def catalog_workflow(ctx: ScenarioContext):
    """All products → product detail → search → categories → category listing."""
    client = ctx.client
    products_url = "/api/products"

    resp = await client.get(products_url)
    ctx.check(resp, {
        "get all products status is 200": _status_ok,
        "get all products response time < 500ms": _faster_than(500),
        "get all products has products array": lambda r: len(r.json()["products"]) > 0,
    })
    _track(ctx, resp, CATALOG_RESPONSE_TIME)
    await ctx.pause(*STEP_PAUSE)

    product_id = ctx.rng.choice(PRODUCT_IDS)
    resp = await client.get(f"{products_url}/{product_id}")
    ctx.check(resp, {
        "get product by id status is 200": _status_ok,
        "get product by id response time < 200ms": _faster_than(200),
        "get product by id has product data": lambda r: all(
            r.json().get(key) for key in ("id", "name", "price_usd")
        ),
    })
    _track(ctx, resp, PRODUCT_DETAIL_TIME)
    await ctx.pause(*STEP_PAUSE)

    term = ctx.rng.choice(SEARCH_TERMS)
    resp = await client.get(f"{products_url}/search?q={term}")
    ctx.check(resp, {
        "search products status is 200": _status_ok,
        "search products response time < 400ms": _faster_than(400),
        "search products has results": lambda r: isinstance(r.json()["results"], list),
    })
    _track(ctx, resp, PRODUCT_SEARCH_TIME)
    await ctx.pause(*STEP_PAUSE)

    resp = await client.get(f"{products_url}/categories")
    ctx.check(resp, {
        "get categories status is 200": _status_ok,
        "get categories response time < 300ms": _faster_than(300),
        "get categories has categories array": lambda r: isinstance(r.json()["categories"], list),
    })
    _track(ctx, resp, CATALOG_RESPONSE_TIME)
    await ctx.pause(*STEP_PAUSE)

    category = ctx.rng.choice(CATEGORIES)
    resp = await client.get(f"{products_url}/category/{category}")
    ctx.check(resp, {
        "get products by category status is 200": _status_ok,
        "get products by category response time < 400ms": _faster_than(400),
        "get products by category has products": lambda r: isinstance(r.json()["products"], list),
    })
    _track(ctx, resp, CATALOG_RESPONSE_TIME)
    await ctx.pause(*STEP_PAUSE)


# =============================================================================
# CART
# =============================================================================

async def cart_workflow(ctx: ScenarioContext):
    """
    Full cart session: get → add → get → update → remove → add 1-3 items →
    total → clear (30% of sessions).
    """
    client = ctx.client
    rng = ctx.rng
    user_id = rng.choice(USER_IDS)
    cart_url = f"/api/cart/{user_id}"

    resp = await client.get(cart_url)
    ctx.check(resp, {
        "get cart status is 200": _status_ok,
        "get cart response time < 200ms": _faster_than(200),
        "get cart has valid response": _body_is_cart_of(user_id),
    })
    _track(ctx, resp, GET_CART_TIME)
    await ctx.pause(*STEP_PAUSE)

    product_id = rng.choice(PRODUCT_IDS)
    resp = await client.post(
        f"{cart_url}/items",
        json=cart_item(product_id, rng.randint(1, 5)),
        headers=JSON_HEADERS,
    )
    ctx.check(resp, {
        "add item status is 200": _status_ok,
        "add item response time < 400ms": _faster_than(400),
        "add item has valid response": _body_is_cart_of(user_id),
    })
    _track(ctx, resp, ADD_ITEM_TIME)
    await ctx.pause(*STEP_PAUSE)

    resp = await client.get(cart_url)
    ctx.check(resp, {
        "get cart with items status is 200": _status_ok,
        "get cart with items response time < 200ms": _faster_than(200),
        "get cart with items has items": lambda r: (
            r.json()["user_id"] == user_id and len(r.json()["items"]) > 0
        ),
    })
    _track(ctx, resp, GET_CART_TIME)
    await ctx.pause(*STEP_PAUSE)

    resp = await client.put(
        f"{cart_url}/items/{product_id}",
        json=cart_item(product_id, rng.randint(1, 5)),
        headers=JSON_HEADERS,
    )
    ctx.check(resp, {
        "update item status is 200": _status_ok,
        "update item response time < 300ms": _faster_than(300),
        "update item has valid response": _body_user_is(user_id),
    })
    _track(ctx, resp, CART_RESPONSE_TIME)
    await ctx.pause(*STEP_PAUSE)

    resp = await client.delete(f"{cart_url}/items/{product_id}")
    ctx.check(resp, {
        "remove item status is 200": _status_ok,
        "remove item response time < 300ms": _faster_than(300),
        "remove item has valid response": _body_user_is(user_id),
    })
    _track(ctx, resp, REMOVE_ITEM_TIME)
    await ctx.pause(*STEP_PAUSE)

    for _ in range(rng.randint(1, 3)):
        resp = await client.post(
            f"{cart_url}/items",
            json=cart_item(rng.choice(PRODUCT_IDS), rng.randint(1, 5)),
            headers=JSON_HEADERS,
        )
        ctx.check(resp, {
            "add multiple items status is 200": _status_ok,
            "add multiple items response time < 400ms": _faster_than(400),
        })
        _track(ctx, resp, ADD_ITEM_TIME)
        await ctx.sleep(0.5)
    await ctx.pause(*STEP_PAUSE)

    resp = await client.get(f"{cart_url}/total")
    ctx.check(resp, {
        "get cart total status is 200": _status_ok,
        "get cart total response time < 300ms": _faster_than(300),
        "get cart total has valid response": lambda r: (
            r.json()["user_id"] == user_id
            and isinstance(r.json()["total"], (int, float))
        ),
    })
    _track(ctx, resp, CART_RESPONSE_TIME)
    await ctx.pause(*STEP_PAUSE)

    if rng.random() < CLEAR_CART_PROBABILITY:
        resp = await client.delete(f"{cart_url}/items")
        ctx.check(resp, {
            "clear cart status is 200": _status_ok,
            "clear cart response time < 200ms": _faster_than(200),
            "clear cart has valid response": _body_user_is(user_id),
        })
        _track(ctx, resp, CLEAR_CART_TIME)
        await ctx.pause(*STEP_PAUSE)


# =============================================================================
# MIXED-SERVICE WORKFLOWS
# =============================================================================

async def catalog_quick_workflow(ctx: ScenarioContext):
    """Catalog slice of the comprehensive run: list, detail, search."""
    client = ctx.client

    resp = await client.get("/api/products")
    ctx.check(resp, {
        "catalog - get all products status is 200": _status_ok,
        "catalog - get all products response time < 500ms": _faster_than(500),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    resp = await client.get(f"/api/products/{ctx.rng.choice(PRODUCT_IDS)}")
    ctx.check(resp, {
        "catalog - get product by id status is 200": _status_ok,
        "catalog - get product by id response time < 200ms": _faster_than(200),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    resp = await client.get(f"/api/products/search?q={ctx.rng.choice(SEARCH_TERMS)}")
    ctx.check(resp, {
        "catalog - search products status is 200": _status_ok,
        "catalog - search products response time < 400ms": _faster_than(400),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)


async def cart_quick_workflow(ctx: ScenarioContext):
    """Cart slice of the comprehensive run: get, add, total, maybe remove."""
    client = ctx.client
    rng = ctx.rng
    user_id = rng.choice(USER_IDS)
    cart_url = f"/api/cart/{user_id}"

    resp = await client.get(cart_url)
    ctx.check(resp, {
        "cart - get cart status is 200": _status_ok,
        "cart - get cart response time < 200ms": _faster_than(200),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    product_id = rng.choice(PRODUCT_IDS)
    resp = await client.post(
        f"{cart_url}/items",
        json=cart_item(product_id, rng.randint(1, 5)),
        headers=JSON_HEADERS,
    )
    ctx.check(resp, {
        "cart - add item status is 200": _status_ok,
        "cart - add item response time < 400ms": _faster_than(400),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    resp = await client.get(f"{cart_url}/total")
    ctx.check(resp, {
        "cart - get cart total status is 200": _status_ok,
        "cart - get cart total response time < 300ms": _faster_than(300),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    if rng.random() < CLEAR_CART_PROBABILITY:
        resp = await client.delete(f"{cart_url}/items/{product_id}")
        ctx.check(resp, {
            "cart - remove item status is 200": _status_ok,
            "cart - remove item response time < 300ms": _faster_than(300),
        })
        _track(ctx, resp, OVERALL_RESPONSE_TIME)


async def frontend_workflow(ctx: ScenarioContext):
    """Homepage plus one static asset."""
    client = ctx.client

    resp = await client.get("/")
    ctx.check(resp, {
        "frontend - homepage status is 200": _status_ok,
        "frontend - homepage response time < 1000ms": _faster_than(1000),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)

    resp = await client.get("/static/css/main.css")
    ctx.check(resp, {
        "frontend - static assets status is 200": _status_ok,
        "frontend - static assets response time < 500ms": _faster_than(500),
    })
    _track(ctx, resp, OVERALL_RESPONSE_TIME)
