"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import approvals as approvals_routes
from api.routes import payments as payments_routes
from api.routes import purchases as purchases_routes
from api.routes import settlements as settlements_routes
from api.routes import transfers as transfers_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables, engine
from infrastructure.external.payments import is_stripe_available


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )
    if not is_stripe_available():
        logger.warning("stripe_sdk_missing", message="Card payments and transfers are unavailable")

    yield

    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="认证兑换码交易平台：采购、人工付款审核、分账与 ACC 转账",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(purchases_routes.router, prefix=settings.API_PREFIX)
app.include_router(approvals_routes.router, prefix=settings.API_PREFIX)
app.include_router(payments_routes.router, prefix=settings.API_PREFIX)
app.include_router(transfers_routes.router, prefix=settings.API_PREFIX)
app.include_router(settlements_routes.router, prefix=settings.API_PREFIX)


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
        message="Welcome"
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
