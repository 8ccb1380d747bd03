from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.mortgage_dashboard.db import session_scope
from app.mortgage_dashboard.modules.mortgage_packages.models import (
    ROW_FIELDS,
    MortgagePackage,
    MortgagePackageRecord,
)
from app.mortgage_dashboard.supabase_client import SupabaseClient, SupabaseError, eq

logger = logging.getLogger(__name__)

# Raised by MortgagePackage.from_row on rows with missing or unparseable values.
_ROW_ERRORS = (KeyError, TypeError, ValueError)


class StoreError(RuntimeError):
    pass


class PackageStore:
    """
    Record store for mortgage packages. Every method is a single round trip.
    `fields` is the normalized payload built by the package service.
    """

    def list(self, *, access_token: str | None = None) -> list[MortgagePackage]:
        raise NotImplementedError

    def get(self, package_id: str, *, access_token: str | None = None) -> MortgagePackage | None:
        raise NotImplementedError

    def insert(self, fields: dict[str, Any], *, access_token: str | None = None) -> MortgagePackage:
        raise NotImplementedError

    def update(self, package_id: str, fields: dict[str, Any], *, access_token: str | None = None) -> None:
        raise NotImplementedError

    def delete(self, package_id: str, *, access_token: str | None = None) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class SupabasePackageStore(PackageStore):
    client: SupabaseClient
    table: str = "mortgage_packages"

    def list(self, *, access_token: str | None = None) -> list[MortgagePackage]:
        try:
            rows = self.client.select(self.table, access_token=access_token)
        except SupabaseError as e:
            raise StoreError(f"Failed to list {self.table}") from e
        packages: list[MortgagePackage] = []
        for row in rows:
            try:
                packages.append(MortgagePackage.from_row(row))
            except _ROW_ERRORS as e:
                logger.warning("Skipping malformed %s row id=%s: %s", self.table, row.get("id"), e)
        return packages

    def get(self, package_id: str, *, access_token: str | None = None) -> MortgagePackage | None:
        try:
            rows = self.client.select(self.table, filters={"id": eq(package_id)}, access_token=access_token)
        except SupabaseError as e:
            raise StoreError(f"Failed to load {self.table} id={package_id}") from e
        if not rows:
            return None
        try:
            return MortgagePackage.from_row(rows[0])
        except _ROW_ERRORS as e:
            raise StoreError(f"Malformed {self.table} row id={package_id}") from e

    def insert(self, fields: dict[str, Any], *, access_token: str | None = None) -> MortgagePackage:
        try:
            rows = self.client.insert(self.table, [fields], access_token=access_token)
        except SupabaseError as e:
            raise StoreError(f"Failed to insert into {self.table}") from e
        if not rows:
            raise StoreError(f"Insert into {self.table} returned no row")
        return MortgagePackage.from_row(rows[0])

    def update(self, package_id: str, fields: dict[str, Any], *, access_token: str | None = None) -> None:
        try:
            self.client.update(self.table, fields, filters={"id": eq(package_id)}, access_token=access_token)
        except SupabaseError as e:
            raise StoreError(f"Failed to update {self.table} id={package_id}") from e

    def delete(self, package_id: str, *, access_token: str | None = None) -> None:
        try:
            self.client.delete(self.table, filters={"id": eq(package_id)}, access_token=access_token)
        except SupabaseError as e:
            raise StoreError(f"Failed to delete {self.table} id={package_id}") from e


@dataclass(frozen=True)
class SqlPackageStore(PackageStore):
    sessions: sessionmaker

    def list(self, *, access_token: str | None = None) -> list[MortgagePackage]:
        try:
            with session_scope(self.sessions) as s:
                records = s.query(MortgagePackageRecord).all()
                rows = [r.to_row() for r in records]
        except SQLAlchemyError as e:
            raise StoreError("Failed to list mortgage_packages") from e
        return [MortgagePackage.from_row(r) for r in rows]

    def get(self, package_id: str, *, access_token: str | None = None) -> MortgagePackage | None:
        try:
            with session_scope(self.sessions) as s:
                rec = s.get(MortgagePackageRecord, package_id)
                row = rec.to_row() if rec else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load mortgage_packages id={package_id}") from e
        return MortgagePackage.from_row(row) if row else None

    def insert(self, fields: dict[str, Any], *, access_token: str | None = None) -> MortgagePackage:
        try:
            with session_scope(self.sessions) as s:
                rec = MortgagePackageRecord(**_record_values(fields))
                s.add(rec)
                s.flush()
                row = rec.to_row()
        except (SQLAlchemyError, ValueError) as e:
            raise StoreError("Failed to insert into mortgage_packages") from e
        return MortgagePackage.from_row(row)

    def update(self, package_id: str, fields: dict[str, Any], *, access_token: str | None = None) -> None:
        try:
            with session_scope(self.sessions) as s:
                rec = s.get(MortgagePackageRecord, package_id)
                if rec is None:
                    # Same as an update-by-id that matches no row on the hosted API.
                    logger.warning("update matched no mortgage package id=%s", package_id)
                    return
                for k, v in _record_values(fields).items():
                    setattr(rec, k, v)
        except (SQLAlchemyError, ValueError) as e:
            raise StoreError(f"Failed to update mortgage_packages id={package_id}") from e

    def delete(self, package_id: str, *, access_token: str | None = None) -> None:
        try:
            with session_scope(self.sessions) as s:
                rec = s.get(MortgagePackageRecord, package_id)
                if rec is not None:
                    s.delete(rec)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete mortgage_packages id={package_id}") from e


def _record_values(fields: dict[str, Any]) -> dict[str, Any]:
    values = {k: v for k, v in fields.items() if k in ROW_FIELDS}
    if isinstance(values.get("last_updated"), str):
        values["last_updated"] = date.fromisoformat(values["last_updated"])
    return values


def store_from_config(config: dict, *, sessions: sessionmaker | None = None) -> PackageStore:
    backend = (config.get("STORE_BACKEND") or "supabase").strip().lower()
    if backend == "sql":
        if sessions is None:
            raise StoreError("sql store backend requires an initialized database (init_db).")
        return SqlPackageStore(sessions=sessions)
    client = SupabaseClient(
        base_url=(config.get("SUPABASE_URL") or "").strip(),
        api_key=(config.get("SUPABASE_ANON_KEY") or "").strip(),
        timeout_seconds=int(config.get("SUPABASE_TIMEOUT_SECONDS") or 30),
    )
    return SupabasePackageStore(client=client, table=(config.get("PACKAGES_TABLE") or "mortgage_packages").strip())
