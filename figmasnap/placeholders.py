# placeholders.py
from datetime import date
from typing import Any, Dict, Optional

# 固定のトークン集合。未知のトークンはそのまま残す
TOKENS = ('{pageNum}', '{totalPages}', '{date}', '{year}')


def locale_date(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.month}/{today.day}/{today.year}"


def substitute(template: Optional[str], values: Optional[Dict[str, Any]] = None, today: Optional[date] = None) -> str:
    """ヘッダー/フッターのテンプレート文字列を置換する"""
    if not template:
        return ''
    values = values or {}
    today = today or date.today()
    replacements = {
        '{pageNum}': values.get('pageNum', values.get('page_num')),
        '{totalPages}': values.get('totalPages', values.get('total_pages')),
        '{date}': locale_date(today),
        '{year}': today.year,
    }
    text = template
    for token in TOKENS:
        value = replacements[token]
        if value is None:
            continue
        text = text.replace(token, str(value))
    return text
