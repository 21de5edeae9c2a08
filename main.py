import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from cart_analysis import CartAnalysisService
from cart_discounts import CommercetoolsDiscounts
from category_service import CommercetoolsCatalog
from commercetools_util import CommercetoolsClient, fetch_cart
from discount_cache import DEFAULT_TTL_SECONDS, DiscountCache
from errors import CartAnalysisError, CollaboratorFailure, InvalidCartData
from models import CartAnalysis, CartSnapshot, DiscountDescriptor, PriorityEntry

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

ADMIN_KEY = os.getenv("ADMIN_API_KEY")
CACHE_TTL_SECONDS = float(os.getenv("DISCOUNT_CACHE_TTL_SECONDS", str(DEFAULT_TTL_SECONDS)))

ct_client = CommercetoolsClient.from_env()
discounts_client = CommercetoolsDiscounts(ct_client)
analysis_service = CartAnalysisService(
    catalog=CommercetoolsCatalog(ct_client),
    discounts=discounts_client,
    cache=DiscountCache(ttl_seconds=CACHE_TTL_SECONDS),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await ct_client.aclose()


app = FastAPI(title="Cart Discount Preview", lifespan=lifespan)

# 🔐 Allow frontend CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://127.0.0.1:5500").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 🔐 Admin API key check
def check_admin(api_key: str):
    if not ADMIN_KEY or api_key != ADMIN_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def to_http_error(e: CartAnalysisError) -> HTTPException:
    if isinstance(e, InvalidCartData):
        return HTTPException(status_code=400, detail=str(e))
    logger.error("Cart analysis failed: %s", e)
    return HTTPException(status_code=502, detail="Unable to reach the commerce platform")


@app.get("/api/health")
def health():
    return {"status": "ok"}


# 🎯 1. ANALYZE A CART SNAPSHOT
@app.post("/api/cart/analyze", response_model=CartAnalysis)
async def analyze_cart(cart: CartSnapshot):
    try:
        return await analysis_service.analyze_cart(cart)
    except CartAnalysisError as e:
        raise to_http_error(e)


# 🎯 2. ANALYZE A RAW PLATFORM CART
@app.post("/api/cart/analyze/platform", response_model=CartAnalysis)
async def analyze_platform_cart(body: Dict[str, Any]):
    try:
        cart = CartSnapshot.from_platform(body)
        return await analysis_service.analyze_cart(cart)
    except CartAnalysisError as e:
        raise to_http_error(e)


# 🎯 3. ANALYZE A STORED CART
@app.get("/api/carts/{cart_id}/analysis", response_model=CartAnalysis)
async def analyze_stored_cart(cart_id: str):
    try:
        raw = await fetch_cart(ct_client, cart_id)
    except CollaboratorFailure as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail="Cart not found")
        raise to_http_error(e)

    try:
        cart = CartSnapshot.from_platform(raw)
        return await analysis_service.analyze_cart(cart)
    except CartAnalysisError as e:
        raise to_http_error(e)


# 🎯 4. AUTO-TRIGGERED DISCOUNTS
@app.get("/api/discounts/auto", response_model=List[DiscountDescriptor])
async def auto_discounts():
    try:
        return await analysis_service.get_auto_discounts()
    except CartAnalysisError as e:
        raise to_http_error(e)


# 🎯 5. PRIORITY VIEW
@app.get("/api/discounts/priority", response_model=List[PriorityEntry])
async def discounts_priority():
    try:
        return await discounts_client.priority_view()
    except CartAnalysisError as e:
        raise to_http_error(e)


# 🎯 6. CLEAR DISCOUNT CACHE
@app.post("/api/discounts/cache/clear")
def clear_discount_cache(api_key: str = Header(..., alias="x-api-key")):
    check_admin(api_key)
    analysis_service.clear_cache()
    return {"message": "✅ Discount cache cleared"}
