"""User-facing (Japanese) wording for API error details."""

from __future__ import annotations

from typing import Any

# Ordered: the first matching fragment wins.
_LOCALIZED_FRAGMENTS: tuple[tuple[str, str], ...] = (
    ("invalid login credentials", "メールアドレスまたはパスワードが正しくありません"),
    ("rate limit", "送信回数が上限に達しました。しばらく待ってから再試行してください"),
    ("invalid email", "無効なメールアドレスです"),
    ("network", "ネットワークエラーが発生しました。接続を確認してください"),
    ("not verified", "メール認証が完了していません"),
    ("verification code", "認証コードが正しくないか、有効期限が切れています"),
)


def localize_error(detail: Any) -> str:
    """Translate an error ``detail`` into the message shown to end users."""

    if isinstance(detail, list):
        # Pydantic validation errors
        parts = [str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail]
        text = "; ".join(parts)
    else:
        text = str(detail)

    lowered = text.lower()
    for fragment, message in _LOCALIZED_FRAGMENTS:
        if fragment in lowered:
            return message
    return f"エラー: {text}"


__all__ = ["localize_error"]
