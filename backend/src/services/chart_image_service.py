"""
チャート画像保存サービス

アップロードされたチャート画像を UPLOAD_DIR に保存し、公開URLのパスを返す。
ファイル名はUUIDで採番し、元のファイル名は使用しない。
"""

import os
import uuid
from typing import Optional

from src.utils.config import UPLOAD_DIR, MAX_UPLOAD_BYTES
from src.utils.logger import get_logger

logger = get_logger(__name__)


ALLOWED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")


class ChartImageService:
    """
    チャート画像保存サービスクラス

    Attributes:
        upload_dir (str): 保存先ディレクトリ
        max_bytes (int): 最大ファイルサイズ
    """

    def __init__(self, upload_dir: Optional[str] = None, max_bytes: Optional[int] = None):
        self.upload_dir = upload_dir or UPLOAD_DIR
        self.max_bytes = max_bytes or MAX_UPLOAD_BYTES

    def save(self, filename: str, content: bytes) -> dict:
        """
        画像を保存する

        Args:
            filename (str): 元のファイル名（拡張子の判定にのみ使用）
            content (bytes): 画像データ

        Returns:
            dict: {"filename": 保存名, "image_url": "/uploads/保存名"}
                エラー時は {"error": "エラーメッセージ"}
        """
        extension = os.path.splitext(filename or "")[1].lower()
        if extension not in ALLOWED_EXTENSIONS:
            return {"error": "Please upload an image file"}
        if not content:
            return {"error": "Uploaded file is empty"}
        if len(content) > self.max_bytes:
            return {"error": f"File too large (max {self.max_bytes} bytes)"}

        os.makedirs(self.upload_dir, exist_ok=True)
        saved_name = f"{uuid.uuid4().hex}{extension}"
        with open(os.path.join(self.upload_dir, saved_name), "wb") as f:
            f.write(content)

        logger.info(f"チャート画像を保存しました: {saved_name} ({len(content)} bytes)")
        return {"filename": saved_name, "image_url": f"/uploads/{saved_name}"}
