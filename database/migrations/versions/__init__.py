"""Пакет для версий миграций"""

from database.migrations.versions.v001_initial_schema import InitialSchema
from database.migrations.versions.v002_add_version_column import AddVersionColumn
from database.migrations.versions.v003_add_promotions import AddPromotions

ALL_MIGRATIONS = [InitialSchema, AddVersionColumn, AddPromotions]

__all__ = ["InitialSchema", "AddVersionColumn", "AddPromotions", "ALL_MIGRATIONS"]
