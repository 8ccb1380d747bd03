from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, session, url_for

from app.mortgage_dashboard.constants import (
    BANK_OPTIONS,
    CATEGORY_OPTIONS,
    LOCKIN_PERIOD_OPTIONS,
    PROPERTY_TYPE_OPTIONS,
    SORT_CHOICES,
)
from app.mortgage_dashboard.modules.mortgage_packages.listing import (
    FilterState,
    SortState,
    build_list_view,
    list_signature,
    resolve_page,
)
from app.mortgage_dashboard.modules.mortgage_packages.service import (
    PackageValidationError,
    default_form_values,
    delete_package,
    form_values_from_package,
    form_values_from_request,
    save_package,
)
from app.mortgage_dashboard.rbac import can_edit, require_editor, require_login
from app.mortgage_dashboard.store import PackageStore, StoreError

bp = Blueprint("packages", __name__)

_LIST_SIGNATURE_KEY = "package_list_signature"

# Dashboard query args carried through the editor pages and back; posted as "list_<name>".
_LIST_ARG_NAMES = ("q", "bank", "property_type", "lockin_period", "category", "client_loan", "sort", "page")
_LIST_FIELD_PREFIX = "list_"


def _store() -> PackageStore:
    return current_app.extensions["package_store"]


def _access_token() -> str | None:
    return session.get("access_token")


def _list_args(source, prefix: str = "") -> dict[str, str]:
    out: dict[str, str] = {}
    for name in _LIST_ARG_NAMES:
        value = (source.get(prefix + name) or "").strip()
        if value:
            out[name] = value
    return out


def _back_to_dashboard(list_args: dict[str, str]):
    return redirect(url_for("packages.dashboard", **list_args))


def _render_form(
    values: dict[str, str],
    *,
    list_args: dict[str, str],
    package_id: str | None = None,
    errors: dict[str, str] | None = None,
    status: int = 200,
):
    return (
        render_template(
            "packages/form.html",
            values=values,
            list_args=list_args,
            list_field_prefix=_LIST_FIELD_PREFIX,
            errors=errors or {},
            package_id=package_id,
            bank_options=BANK_OPTIONS,
            property_type_options=PROPERTY_TYPE_OPTIONS,
            lockin_period_options=LOCKIN_PERIOD_OPTIONS,
            category_options=CATEGORY_OPTIONS,
        ),
        status,
    )


# ---------- List ----------
@bp.get("/dashboard")
@require_login
def dashboard():
    filters = FilterState.from_args(request.args)
    sort = SortState.from_value(request.args.get("sort"))
    signature = list_signature(filters, sort)
    page = resolve_page(request.args.get("page"), signature, session.get(_LIST_SIGNATURE_KEY))
    session[_LIST_SIGNATURE_KEY] = signature

    try:
        packages = _store().list(access_token=_access_token())
    except StoreError:
        current_app.logger.exception("Error fetching packages (request_id=%s)", getattr(g, "request_id", None))
        flash("Failed to fetch mortgage packages", "danger")
        packages = []

    view = build_list_view(
        packages,
        filters,
        sort,
        page=page,
        page_size=current_app.config.get("PAGE_SIZE") or 10,
    )
    filter_args = filters.to_args()
    return render_template(
        "packages/list.html",
        view=view,
        filter_args=filter_args,
        list_args={**filter_args, "sort": sort.value, "page": str(view.page.number)},
        sort_choices=SORT_CHOICES,
        can_edit=can_edit(),
    )


# ---------- New ----------
@bp.get("/dashboard/packages/new")
@require_editor
def package_new_get():
    return _render_form(default_form_values(), list_args=_list_args(request.args))


@bp.post("/dashboard/packages/new")
@require_editor
def package_new_post():
    values = form_values_from_request(request.form)
    list_args = _list_args(request.form, _LIST_FIELD_PREFIX)
    try:
        save_package(_store(), values, access_token=_access_token())
    except PackageValidationError as e:
        return _render_form(values, list_args=list_args, errors=e.errors, status=400)
    except StoreError:
        current_app.logger.exception("Error saving package (request_id=%s)", getattr(g, "request_id", None))
        flash("Failed to create mortgage package", "danger")
        return _render_form(values, list_args=list_args, status=502)

    flash("Mortgage package created successfully", "success")
    return _back_to_dashboard(list_args)


# ---------- Edit ----------
@bp.get("/dashboard/packages/<package_id>/edit")
@require_editor
def package_edit_get(package_id: str):
    list_args = _list_args(request.args)
    try:
        pkg = _store().get(package_id, access_token=_access_token())
    except StoreError:
        current_app.logger.exception("Error loading package id=%s", package_id)
        flash("Failed to fetch mortgage packages", "danger")
        return _back_to_dashboard(list_args)
    if pkg is None:
        abort(404)
    return _render_form(form_values_from_package(pkg), list_args=list_args, package_id=package_id)


@bp.post("/dashboard/packages/<package_id>/edit")
@require_editor
def package_edit_post(package_id: str):
    values = form_values_from_request(request.form)
    list_args = _list_args(request.form, _LIST_FIELD_PREFIX)
    try:
        save_package(_store(), values, package_id=package_id, access_token=_access_token())
    except PackageValidationError as e:
        return _render_form(values, list_args=list_args, package_id=package_id, errors=e.errors, status=400)
    except StoreError:
        current_app.logger.exception("Error saving package id=%s (request_id=%s)", package_id, getattr(g, "request_id", None))
        flash("Failed to update mortgage package", "danger")
        return _render_form(values, list_args=list_args, package_id=package_id, status=502)

    flash("Mortgage package updated successfully", "success")
    return _back_to_dashboard(list_args)


# ---------- Delete ----------
@bp.get("/dashboard/packages/<package_id>/delete")
@require_editor
def package_delete_get(package_id: str):
    list_args = _list_args(request.args)
    try:
        pkg = _store().get(package_id, access_token=_access_token())
    except StoreError:
        current_app.logger.exception("Error loading package id=%s", package_id)
        flash("Failed to fetch mortgage packages", "danger")
        return _back_to_dashboard(list_args)
    if pkg is None:
        abort(404)
    return render_template(
        "packages/confirm_delete.html",
        package=pkg,
        list_args=list_args,
        list_field_prefix=_LIST_FIELD_PREFIX,
    )


@bp.post("/dashboard/packages/<package_id>/delete")
@require_editor
def package_delete_post(package_id: str):
    list_args = _list_args(request.form, _LIST_FIELD_PREFIX)
    confirmed = (request.form.get("confirm") or "").strip().lower() == "yes"
    try:
        deleted = delete_package(_store(), package_id, confirmed=confirmed, access_token=_access_token())
    except StoreError:
        current_app.logger.exception("Error deleting package id=%s (request_id=%s)", package_id, getattr(g, "request_id", None))
        flash("Failed to delete mortgage package", "danger")
        return _back_to_dashboard(list_args)

    if deleted:
        flash("Mortgage package deleted successfully", "success")
    return _back_to_dashboard(list_args)
