"""Query isolation filter.

Bulk reads of tenant-scoped records are described as a small typed query
tree (QuerySpec nodes with Eq / In / And / Or / Not / Exists predicates)
before they are compiled to SQL. apply_tenant_isolation rewrites a tree so
that every node, including included relations, named sub-queries and
sub-queries nested inside predicates, is constrained by

    tenant_id == <tenant> AND organization_id == <organization>

in front of its own filter. Nodes are frozen, so the input tree is never
modified, and applying isolation twice yields the same tree as applying it
once.

Usage:
    spec = from_mapping("dossier", {"where": {"status": "open"}, "include": {"pieces": True}})
    isolated = apply_tenant_isolation(spec, tenant_context)
    stmt = select(Dossier).where(compile_predicate(isolated.base_query.where, Dossier))
"""

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import and_, inspect, not_, or_, true

from .context import TenantContext


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class And:
    clauses: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    clauses: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Not:
    clause: "Predicate"


@dataclass(frozen=True)
class Exists:
    """A related record matching query exists (relation sub-query)."""
    relation: str
    query: "QuerySpec"


Predicate = Union[Eq, In, And, Or, Not, Exists]


@dataclass(frozen=True)
class QuerySpec:
    """One query node: a model, its filter, and nested nodes by name."""
    model: str
    where: Optional[Predicate] = None
    include: Tuple[Tuple[str, "QuerySpec"], ...] = ()
    subqueries: Tuple[Tuple[str, "QuerySpec"], ...] = ()


@dataclass(frozen=True)
class EncryptionContext:
    tenant_id: str
    organization_id: UUID


@dataclass(frozen=True)
class IsolatedQuery:
    base_query: QuerySpec
    tenant_filter: And
    encryption_context: EncryptionContext


def tenant_predicate(context: TenantContext) -> And:
    return And((Eq("tenant_id", context.tenant_id), Eq("organization_id", context.organization_id)))


def _isolate_predicate(predicate: Predicate, tenant: And) -> Predicate:
    if isinstance(predicate, (And, Or)):
        return type(predicate)(tuple(_isolate_predicate(clause, tenant) for clause in predicate.clauses))
    if isinstance(predicate, Not):
        return Not(_isolate_predicate(predicate.clause, tenant))
    if isinstance(predicate, Exists):
        return Exists(predicate.relation, _isolate_spec(predicate.query, tenant))
    return predicate


def _with_tenant(where: Optional[Predicate], tenant: And) -> Predicate:
    if where is None or where == tenant:
        return tenant
    if isinstance(where, And) and where.clauses and where.clauses[0] == tenant:
        return where
    return And((tenant, where))


def _isolate_spec(spec: QuerySpec, tenant: And) -> QuerySpec:
    where = _isolate_predicate(spec.where, tenant) if spec.where is not None else None
    return replace(
        spec,
        where=_with_tenant(where, tenant),
        include=tuple((name, _isolate_spec(node, tenant)) for name, node in spec.include),
        subqueries=tuple((name, _isolate_spec(node, tenant)) for name, node in spec.subqueries),
    )


def apply_tenant_isolation(query: QuerySpec, context: TenantContext) -> IsolatedQuery:
    """Constrain every node of a query tree to the context's tenant."""
    tenant = tenant_predicate(context)
    return IsolatedQuery(
        base_query=_isolate_spec(query, tenant),
        tenant_filter=tenant,
        encryption_context=EncryptionContext(context.tenant_id, context.organization_id),
    )


# ----------------------------------------------------------------------
# Legacy mapping form
# ----------------------------------------------------------------------

def _parse_where(where: Mapping[str, Any]) -> Optional[Predicate]:
    clauses = []
    for key, value in where.items():
        if key == "AND":
            clauses.append(And(tuple(_required(_parse_where(item)) for item in _as_list(value))))
        elif key == "OR":
            clauses.append(Or(tuple(_required(_parse_where(item)) for item in _as_list(value))))
        elif key == "NOT":
            clauses.append(Not(_required(_parse_where(value))))
        elif isinstance(value, Mapping) and "in" in value:
            clauses.append(In(key, tuple(value["in"])))
        elif isinstance(value, Mapping) and "some" in value:
            clauses.append(Exists(key, from_mapping(key, {"where": value["some"]})))
        elif isinstance(value, Mapping):
            raise ValueError(f"Unsupported filter on {key!r}: {dict(value)!r}")
        else:
            clauses.append(Eq(key, value))

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return And(tuple(clauses))


def _required(predicate: Optional[Predicate]) -> Predicate:
    if predicate is None:
        raise ValueError("Empty filter inside AND/OR/NOT")
    return predicate


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _parse_nested(nested: Mapping[str, Any]) -> Tuple[Tuple[str, QuerySpec], ...]:
    nodes = []
    for name, value in nested.items():
        if value is True:
            nodes.append((name, QuerySpec(model=name)))
        elif isinstance(value, Mapping):
            nodes.append((name, from_mapping(value.get("model", name), value)))
        else:
            raise ValueError(f"Unsupported include for {name!r}: {value!r}")
    return tuple(nodes)


def from_mapping(model: str, mapping: Mapping[str, Any]) -> QuerySpec:
    """Parse the nested-dict query shape into a QuerySpec.

    Shape:
        {"where": {"status": "open", "kind": {"in": [...]},
                   "OR": [{...}, {...}], "NOT": {...},
                   "pieces": {"some": {...}}},
         "include": {"client": True, "pieces": {"where": {...}}},
         "subqueries": {"recent": {"model": "event", "where": {...}}}}

    Raises:
        ValueError: If a filter uses an unsupported shape
    """
    where = mapping.get("where")
    return QuerySpec(
        model=model,
        where=_parse_where(where) if where else None,
        include=_parse_nested(mapping.get("include") or {}),
        subqueries=_parse_nested(mapping.get("subqueries") or {}),
    )


# ----------------------------------------------------------------------
# SQLAlchemy compilation
# ----------------------------------------------------------------------

def compile_predicate(predicate: Optional[Predicate], model):
    """Render a predicate as a SQLAlchemy boolean clause over a mapped model.

    Exists predicates follow the model's relationship of the same name.

    Raises:
        ValueError: If a field or relation is not mapped on the model
    """
    if predicate is None:
        return true()
    if isinstance(predicate, Eq):
        column = _column(model, predicate.field)
        return column.is_(None) if predicate.value is None else column == predicate.value
    if isinstance(predicate, In):
        return _column(model, predicate.field).in_(predicate.values)
    if isinstance(predicate, And):
        return and_(*(compile_predicate(clause, model) for clause in predicate.clauses))
    if isinstance(predicate, Or):
        return or_(*(compile_predicate(clause, model) for clause in predicate.clauses))
    if isinstance(predicate, Not):
        return not_(compile_predicate(predicate.clause, model))
    if isinstance(predicate, Exists):
        relationship = inspect(model).relationships.get(predicate.relation)
        if relationship is None:
            raise ValueError(f"{model.__name__} has no relation {predicate.relation!r}")
        related = relationship.mapper.class_
        criterion = compile_predicate(predicate.query.where, related)
        attribute = getattr(model, predicate.relation)
        return attribute.any(criterion) if relationship.uselist else attribute.has(criterion)
    raise TypeError(f"Not a predicate: {predicate!r}")


def _column(model, field: str):
    if field not in inspect(model).columns:
        raise ValueError(f"{model.__name__} has no column {field!r}")
    return getattr(model, field)
