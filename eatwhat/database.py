# eatwhat/database.py
import logging
import os
import ssl
from typing import Any, Optional

import asyncpg

from eatwhat.json_utils import parse_recipe_row
from eatwhat.models import DietaryPreferences, Recipe, UserSettings

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    # Build from individual components if DATABASE_URL not provided
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "eatwhat")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
else:
    # asyncpg only accepts the postgresql:// scheme
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Connection pool
_pool: Optional[asyncpg.Pool] = None

_RECIPE_COLUMNS = """
    id, name, description, ingredients, steps, calories, cooking_time,
    nutrition_facts, cuisine_type, diet_type, img, views
"""


class Database:
    """Database wrapper for asyncpg with connection pooling"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def fetch_one(self, query: str, *args) -> Optional[dict[str, Any]]:
        """Fetch a single row"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    async def fetch_all(self, query: str, *args) -> list[dict[str, Any]]:
        """Fetch multiple rows"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]


async def init_db():
    """Initialize database connection pool"""
    global _pool

    try:
        logger.info("Starting database initialization...")

        ssl_context = None
        environment = os.getenv("ENVIRONMENT", "development")

        if environment in ["production", "staging"]:
            # Managed Postgres requires TLS but serves a self-signed chain
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        min_size = int(os.getenv("DB_POOL_MIN_SIZE", 2))
        max_size = int(os.getenv("DB_POOL_MAX_SIZE", 8))

        logger.info(f"Creating database connection pool (min: {min_size}, max: {max_size})...")
        _pool = await asyncpg.create_pool(
            DATABASE_URL,
            ssl=ssl_context,
            min_size=min_size,
            max_size=max_size,
            command_timeout=30,
            max_inactive_connection_lifetime=300,
        )
        logger.info("Database connection pool created successfully")

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        if _pool:
            await _pool.close()
            _pool = None
        raise


async def close_db():
    """Close database connection pool"""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


async def get_db() -> Database:
    """Get a database instance, creating the pool on first use"""
    if not _pool:
        await init_db()
    return Database(_pool)


class RecipeStore:
    """
    Read-only view of the relational store used by the recommendation core.

    Tables are owned by the CRUD layer; only the reads the core needs live here.
    """

    def __init__(self, db: Database):
        self.db = db

    async def get_preferences(self, user_id: str) -> Optional[DietaryPreferences]:
        row = await self.db.fetch_one(
            """
            SELECT diet_type, cuisine_type, allergies, restrictions,
                   calories_min, calories_max, max_cooking_time
            FROM preferences
            WHERE id = $1
            """,
            user_id,
        )
        return DietaryPreferences(**row) if row else None

    async def get_recent_favorite_ids(self, user_id: str, limit: int = 5) -> list[str]:
        """Favorite recipe ids for a user, most recent first"""
        rows = await self.db.fetch_all(
            """
            SELECT recipe_id
            FROM favorites
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [str(row["recipe_id"]) for row in rows if row["recipe_id"]]

    async def get_recipes_by_ids(self, recipe_ids: list[str]) -> list[Recipe]:
        """Batch fetch. Order of the result is unspecified."""
        if not recipe_ids:
            return []

        rows = await self.db.fetch_all(
            f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id = ANY($1::uuid[])",
            recipe_ids,
        )
        return [Recipe(**parse_recipe_row(row)) for row in rows]

    async def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        row = await self.db.fetch_one(
            f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id = $1",
            recipe_id,
        )
        return Recipe(**parse_recipe_row(row)) if row else None

    async def get_user_settings(
        self, user_id: str, include_credentials: bool = False
    ) -> Optional[UserSettings]:
        """
        Provider settings for a user.

        Credential columns are only selected when explicitly requested.
        """
        columns = "user_id, llm_service, model_name, is_paid"
        if include_credentials:
            columns += ", api_key, api_endpoint"

        row = await self.db.fetch_one(
            f"SELECT {columns} FROM settings WHERE user_id = $1",
            user_id,
        )
        return UserSettings(**row) if row else None


async def get_recipe_store() -> RecipeStore:
    db = await get_db()
    return RecipeStore(db)
