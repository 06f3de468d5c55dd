from fastapi import FastAPI
import logging
from app.api.routes import auth
from app.core.config import get_settings
from app.core.security.mfa.errors import MFAError
from app.core.security.mfa.router import router as mfa_router, admin_router as mfa_admin_router, mfa_exception_handler
from app.core.security.mfa.service import get_cipher
from app.db.base_class import Base
from app.db.session import engine
import app.models  # noqa: F401  モデルをメタデータに登録
import app.core.security.audit.models  # noqa: F401

settings = get_settings()

# ログ設定
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MFA Auth API")

# MFAエラー → HTTPレスポンス
app.add_exception_handler(MFAError, mfa_exception_handler)

@app.on_event("startup")
def startup_event():
    # 暗号化キーを読み込む（不正な形式ならここで起動を中止する）
    get_cipher()
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)
        logger.info("テーブルを作成しました")
    logger.info(f"起動完了: environment={settings.environment}")

""" ----------
 ルーター登録
---------- """
# 認証関連API（ログイン）
app.include_router(auth.router, prefix="/api")

# MFA関連API
app.include_router(mfa_router, prefix="/api")

# MFA管理API
app.include_router(mfa_admin_router, prefix="/api")


@app.get("/")
def root():
    return {"message": "MFA Auth API"}
