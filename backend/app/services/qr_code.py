"""
QRコード生成サービス
"""

import qrcode
import base64
from io import BytesIO
from urllib.parse import quote, urlencode


def build_otpauth_uri(
    secret: str,
    email: str,
    issuer: str,
    digits: int = 6,
    period: int = 30,
    algorithm: str = "SHA1",
) -> str:
    """
    otpauth://totp/<issuer>:<email>?secret=...&issuer=...&digits=6&period=30&algorithm=SHA1 を組み立てる
    （pyotp はデフォルト値のパラメータを省略するため、明示的に全パラメータを含める）
    """
    label = f"{quote(issuer, safe='')}:{quote(email, safe='@')}"
    query = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "digits": digits,
            "period": period,
            "algorithm": algorithm,
        },
        quote_via=quote,
    )
    return f"otpauth://totp/{label}?{query}"


class QRCodeService:
    """QRコード生成を担当するサービスクラス"""

    @staticmethod
    def generate_qr_data_url(
        data: str,
        box_size: int = 10,
        border: int = 4,
        fill_color: str = "black",
        back_color: str = "white"
    ) -> str:
        """
        データをQRコード化し、PNGのdata URLとして返す

        Args:
            data: QRコードに含めるデータ
            box_size: QRコードのボックスサイズ
            border: ボーダーサイズ
            fill_color: 塗りつぶし色
            back_color: 背景色

        Returns:
            data:image/png;base64,... 形式の文字列
        """
        qr = qrcode.QRCode(
            version=None,
            box_size=box_size,
            border=border
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=fill_color,
            back_color=back_color
        )

        buffer = BytesIO()
        img.save(buffer, format='PNG')
        img_str = base64.b64encode(buffer.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
