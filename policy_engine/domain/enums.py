"""
Domain enums for operations and policies.

These enums are the closed vocabularies of the engine: operation
categories, the built-in operation catalog and the policy action and scope
keys.
"""

from enum import Enum


class OperationCategory(str, Enum):
    """Category of a registered operation."""

    MATH = "math"
    STRING = "string"
    DATE = "date"
    LOGICAL = "logical"
    COMPARISON = "comparison"
    ARRAY = "array"
    PERMISSION = "permission"
    CUSTOM = "custom"


class BuiltinOperation(str, Enum):
    """
    Closed catalog of built-in operation names.

    Names are reserved: a host-defined operation may not reuse any of them.
    """

    # Math
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    MOD = "mod"
    POW = "pow"
    ABS = "abs"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    MIN = "min"
    MAX = "max"

    # String
    CONCAT = "concat"
    UPPER = "upper"
    LOWER = "lower"
    CAPITALIZE = "capitalize"
    TRIM = "trim"
    SUBSTRING = "substring"
    REPLACE = "replace"
    SPLIT = "split"
    JOIN = "join"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    LENGTH = "length"

    # Date
    FORMAT_DATE = "formatDate"
    TIME_AGO = "timeAgo"
    YEARS_AGO = "yearsAgo"
    MONTHS_AGO = "monthsAgo"
    DAYS_AGO = "daysAgo"
    NOW = "now"
    CURRENT_YEAR = "currentYear"
    PARSE_DATE = "parseDate"
    IS_PAST = "isPast"
    IS_FUTURE = "isFuture"

    # Logical
    AND = "and"
    OR = "or"
    NOT = "not"
    IF = "if"
    COALESCE = "coalesce"
    EXISTS = "exists"
    IS_NULL = "isNull"
    IS_EMPTY = "isEmpty"

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    BETWEEN = "between"

    # Array
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    FIRST = "first"
    LAST = "last"
    MAP = "map"
    FILTER = "filter"
    FIND = "find"
    SOME = "some"
    EVERY = "every"
    SLICE = "slice"
    UNIQUE = "unique"
    FLATTEN = "flatten"

    # Permission
    HAS_ROLE = "hasRole"
    HAS_ANY_ROLE = "hasAnyRole"
    HAS_ALL_ROLES = "hasAllRoles"
    HAS_PERMISSION = "hasPermission"
    IS_OWNER = "isOwner"
    IS_AUTHENTICATED = "isAuthenticated"
    IS_ANONYMOUS = "isAnonymous"

    @classmethod
    def lookup(cls, name: str) -> "BuiltinOperation | None":
        """Return the member for ``name`` or None when it is not a built-in."""
        try:
            return cls(name)
        except ValueError:
            return None


class PolicyAction(str, Enum):
    """
    Action a policy governs.

    WRITE is an update of an existing record.
    """

    READ = "read"
    WRITE = "write"
    CREATE = "create"
    DELETE = "delete"


class PolicyScope(str, Enum):
    """Granularity a policy applies to."""

    ROW = "row"
    FIELD = "field"


# Actions that carry incoming data subject to field-scope write checks
MUTATING_ACTIONS = frozenset({PolicyAction.WRITE, PolicyAction.CREATE})
