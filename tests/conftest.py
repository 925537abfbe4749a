import asyncio
from contextlib import asynccontextmanager

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

PRODUCTS = [
    {"id": "OLJCESPC7Z", "name": "Sunglasses", "price_usd": 19.99, "category": "accessories"},
    {"id": "66VCHSJNUP", "name": "Tank Top", "price_usd": 18.99, "category": "clothing"},
    {"id": "1YMWWN1N4O", "name": "Watch", "price_usd": 109.99, "category": "electronics"},
]


def build_shop_app(latency: float = 0.0) -> web.Application:
    """Minimal catalog/cart/frontend target. Every handler waits `latency` seconds."""
    carts = {}

    async def delay():
        if latency:
            await asyncio.sleep(latency)

    def cart_body(user_id):
        return {"user_id": user_id, "items": list(carts.get(user_id, {}).values())}

    async def products(request):
        await delay()
        return web.json_response({"products": PRODUCTS})

    async def search(request):
        await delay()
        q = request.query.get("q", "")
        return web.json_response({"results": [p for p in PRODUCTS if q in p["name"].lower()]})

    async def categories(request):
        await delay()
        return web.json_response({"categories": sorted({p["category"] for p in PRODUCTS})})

    async def by_category(request):
        await delay()
        name = request.match_info["category"]
        return web.json_response({"products": [p for p in PRODUCTS if p["category"] == name]})

    async def product(request):
        await delay()
        product_id = request.match_info["product_id"]
        return web.json_response({"id": product_id, "name": "Product", "price_usd": 9.99})

    async def get_cart(request):
        await delay()
        return web.json_response(cart_body(request.match_info["user_id"]))

    async def add_item(request):
        await delay()
        user_id = request.match_info["user_id"]
        item = await request.json()
        carts.setdefault(user_id, {})[item["product_id"]] = item
        return web.json_response(cart_body(user_id))

    async def update_item(request):
        await delay()
        user_id = request.match_info["user_id"]
        item = await request.json()
        carts.setdefault(user_id, {})[request.match_info["product_id"]] = item
        return web.json_response(cart_body(user_id))

    async def remove_item(request):
        await delay()
        user_id = request.match_info["user_id"]
        carts.get(user_id, {}).pop(request.match_info["product_id"], None)
        return web.json_response(cart_body(user_id))

    async def clear_cart(request):
        await delay()
        user_id = request.match_info["user_id"]
        carts.pop(user_id, None)
        return web.json_response(cart_body(user_id))

    async def cart_total(request):
        await delay()
        user_id = request.match_info["user_id"]
        total = sum(item["quantity"] * 9.99 for item in carts.get(user_id, {}).values())
        return web.json_response({"user_id": user_id, "total": total})

    async def homepage(request):
        await delay()
        return web.Response(text="<html>shop</html>", content_type="text/html")

    async def stylesheet(request):
        await delay()
        return web.Response(text="body {}", content_type="text/css")

    async def broken(request):
        await delay()
        return web.json_response({"error": "boom"}, status=500)

    async def slow(request):
        await asyncio.sleep(2)
        return web.json_response({})

    app = web.Application()
    app.router.add_get("/", homepage)
    app.router.add_get("/static/css/main.css", stylesheet)
    app.router.add_get("/broken", broken)
    app.router.add_get("/slow", slow)
    app.router.add_get("/api/products", products)
    app.router.add_get("/api/products/search", search)
    app.router.add_get("/api/products/categories", categories)
    app.router.add_get("/api/products/category/{category}", by_category)
    app.router.add_get("/api/products/{product_id}", product)
    app.router.add_get("/api/cart/{user_id}", get_cart)
    app.router.add_get("/api/cart/{user_id}/total", cart_total)
    app.router.add_post("/api/cart/{user_id}/items", add_item)
    app.router.add_delete("/api/cart/{user_id}/items", clear_cart)
    app.router.add_put("/api/cart/{user_id}/items/{product_id}", update_item)
    app.router.add_delete("/api/cart/{user_id}/items/{product_id}", remove_item)
    return app


@asynccontextmanager
async def serve(app: web.Application):
    server = TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


@pytest_asyncio.fixture
async def shop_url():
    async with serve(build_shop_app()) as url:
        yield url


@pytest_asyncio.fixture
async def slow_shop_url():
    async with serve(build_shop_app(latency=0.05)) as url:
        yield url
