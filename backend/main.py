from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from src.routes import account, trades, metrics
from src.utils.config import CORS_ORIGINS, UPLOAD_DIR
from src.utils.database import engine, Base
from src.utils.logger import get_logger
from src.models import user, trade_entry  # noqa: F401 - テーブル定義の登録に必要

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Trade Journal API を起動しています...")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("テーブルを作成しました（既存テーブルはそのまま）")
    except Exception as e:
        logger.critical(f"データベースの初期化に失敗しました: {e}")
        raise
    yield
    logger.info("Trade Journal API を停止しました")


app = FastAPI(
    title="Trade Journal API",
    description="トレード記録・損益率計算・成績分析用のバックエンドAPI",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def log_validation_error(request: Request, exc: RequestValidationError):
    # レスポンスはFastAPI標準の422のまま
    logger.warning(f"リクエストの検証に失敗しました: {request.method} {request.url.path} errors={len(exc.errors())}")
    return await request_validation_exception_handler(request, exc)


for module, prefix, tag in (
    (account, "/api/v1/account", "Account"),
    (trades, "/api/v1/trades", "Trades"),
    (metrics, "/api/v1/metrics", "Metrics"),
):
    app.include_router(module.router, prefix=prefix, tags=[tag])

# アップロードしたチャート画像（ディレクトリは初回アップロード時に作成）
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/")
async def root():
    return {"name": "Trade Journal API", "version": app.version, "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
