"""Avito 検索順位コレクター."""
