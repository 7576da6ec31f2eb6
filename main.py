import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

import accounts
import database
import interests
import listings
import orders
from config import configure_logging, load_settings
from database import get_db
from errors import register_exception_handlers
from images import ImageStore, delete_upload, get_image_store, store_upload
from schemas import (
    BuyInterestCreateBody,
    LoginBody,
    MarkSoldBody,
    OrderCreateBody,
    ProductCreateBody,
    SignupBody,
)
from security import TokenService, get_current_user, get_token_service

settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("marketplace")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.connect(app.state.settings)
    if database.db is not None:
        database.ensure_indexes(database.db)
    yield
    database.disconnect()


app = FastAPI(title="Marketplace API", version="1.0.0", lifespan=lifespan)
app.state.settings = settings
app.state.token_service = TokenService(
    settings.jwt_secret,
    algorithm=settings.jwt_algorithm,
    ttl=timedelta(days=settings.token_ttl_days),
)
app.state.image_store = ImageStore(settings.upload_dir, max_bytes=settings.max_upload_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app, show_stack=not settings.is_production)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed)
    return response


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Marketplace API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/signup", status_code=status.HTTP_201_CREATED)
def signup(body: SignupBody, db=Depends(get_db), tokens: TokenService = Depends(get_token_service)):
    result = accounts.signup(db, tokens, body.email, body.password, body.name, body.phone)
    return {"message": "User created successfully", **result}


@app.post("/auth/login")
def login(body: LoginBody, db=Depends(get_db), tokens: TokenService = Depends(get_token_service)):
    result = accounts.login(db, tokens, body.email, body.password)
    return {"message": "Login successful", **result}


@app.get("/auth/me")
def me(user=Depends(get_current_user)):
    return user


# ----------------------- Products -----------------------
@app.get("/products")
def list_products(category: Optional[str] = None, db=Depends(get_db)):
    return listings.list_products(db, category)


@app.get("/products/user/{user_id}")
def list_user_products(user_id: str, db=Depends(get_db)):
    return listings.list_products_by_owner(db, user_id)


@app.post("/products/upload")
def upload_image(
    image: UploadFile = File(...),
    user=Depends(get_current_user),
    db=Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    filename = store_upload(db, images, image, user["id"])
    return {"url": images.url_for(filename)}


@app.get("/products/image/{filename}")
def get_image(filename: str, images: ImageStore = Depends(get_image_store)):
    return FileResponse(images.path_for(filename))


@app.delete("/products/image/{filename}")
def delete_image(
    filename: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    delete_upload(db, images, filename, user["id"])
    return {"message": "Image deleted successfully"}


@app.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(
    body: ProductCreateBody,
    user=Depends(get_current_user),
    db=Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    return listings.create_product(db, user["id"], body.model_dump(by_alias=True), images)


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return listings.get_product(db, product_id)


@app.put("/products/{product_id}/mark-sold")
def mark_sold(product_id: str, body: MarkSoldBody, user=Depends(get_current_user), db=Depends(get_db)):
    product = listings.mark_sold(db, product_id, user["id"], body.buyer_id)
    return {"message": "Product marked as sold", "product": product}


# ----------------------- Buy interests -----------------------
@app.post("/buy-interests", status_code=status.HTTP_201_CREATED)
def create_buy_interest(body: BuyInterestCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    return interests.express_interest(db, user["id"], body.product_id, body.payment_method)


@app.get("/buy-interests/seller-products")
def seller_buy_interests(user=Depends(get_current_user), db=Depends(get_db)):
    return interests.list_interests_for_seller(db, user["id"])


# ----------------------- Orders -----------------------
@app.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(body: OrderCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.create_order(db, user["id"], body.product_id, body.payment_method, body.transaction_id)


@app.get("/orders/my-purchases")
def my_purchases(user=Depends(get_current_user), db=Depends(get_db)):
    return orders.list_purchases(db, user["id"])


@app.get("/orders/my-sales")
def my_sales(user=Depends(get_current_user), db=Depends(get_db)):
    return orders.list_sales(db, user["id"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
