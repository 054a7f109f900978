"""
Tenant-scoped lookups that raise NotFound with the engine's error codes.
"""

from __future__ import annotations

from .errors import NotFound
from .models import Contract, Package, Project, Supplier
from .utils import parse_id


def _scoped(model, tenant_id, entity_id):
    pk = parse_id(entity_id)
    if pk is None or not tenant_id:
        return None
    return model.query.filter_by(id=pk, tenant_id=tenant_id).first()


def get_package(tenant_id, package_id) -> Package:
    package = _scoped(Package, tenant_id, package_id)
    if not package:
        raise NotFound("PACKAGE_NOT_FOUND", "Package not found.")
    return package


def get_project(tenant_id, project_id) -> Project:
    project = _scoped(Project, tenant_id, project_id)
    if not project:
        raise NotFound("PROJECT_NOT_FOUND", "Project not found.")
    return project


def get_supplier(tenant_id, supplier_id) -> Supplier:
    supplier = _scoped(Supplier, tenant_id, supplier_id)
    if not supplier:
        raise NotFound("SUPPLIER_NOT_FOUND", "Supplier not found.")
    return supplier


def get_contract(tenant_id, contract_id) -> Contract:
    contract = _scoped(Contract, tenant_id, contract_id)
    if not contract:
        raise NotFound("CONTRACT_NOT_FOUND", "Contract not found.")
    return contract
