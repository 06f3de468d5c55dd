# app/db/base_class.py
""" 全モデル共通の declarative Base """

from sqlalchemy.orm import declarative_base

# Baseクラスを作成
Base = declarative_base()
