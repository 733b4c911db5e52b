"""
Pattern tables for the line-oriented checks.

Tables are ordered ``(label, regex)`` tuples.  Adding a pattern means adding
a row here; the checks iterate the tables and never special-case a label.
Mass-assignment templates carry a ``{models}`` placeholder that is replaced
with an alternation of the unsafe model class names at scan time.
"""

import re
from typing import List, Pattern, Sequence, Tuple

PatternTable = Sequence[Tuple[str, str]]

# ---------------------------------------------------------------------------
# Dangerous query input
# ---------------------------------------------------------------------------

DANGEROUS_QUERY_PATTERNS: PatternTable = (
    ("orderBy with request input", r"->orderBy\s*\(\s*\$request\s*->"),
    ("where with request input", r"->where\s*\(\s*\$request\s*->"),
    ("whereRaw with request input", r"->whereRaw\s*\(\s*\$request\s*->"),
    ("selectRaw with request input", r"->selectRaw\s*\(\s*\$request\s*->"),
    ("orderByRaw with request input", r"->orderByRaw\s*\(\s*\$request\s*->"),
    ("groupByRaw with request input", r"->groupByRaw\s*\(\s*\$request\s*->"),
    ("havingRaw with request input", r"->havingRaw\s*\(\s*\$request\s*->"),
    ("DB::raw with request input", r"DB::raw\s*\(\s*.*\$request\s*->"),
    ("whereColumn with request input", r"->whereColumn\s*\(\s*\$request\s*->"),
    ("orderBy with direct input variable", r"->orderBy\s*\(\s*\$(?:sort|order|column|field|dir)"),
    ("selectRaw with string concat", r"""->selectRaw\s*\(\s*['"].*\.\s*\$"""),
    ("whereRaw with string concat", r"""->whereRaw\s*\(\s*['"].*\.\s*\$"""),
    ("orderByRaw with string concat", r"""->orderByRaw\s*\(\s*['"].*\.\s*\$"""),
    # request() helper
    ("orderBy with request() helper", r"->orderBy\s*\(\s*request\s*\(\)\s*->"),
    ("where with request() helper", r"->where\s*\(\s*request\s*\(\)\s*->"),
    ("whereRaw with request() helper", r"->whereRaw\s*\(\s*request\s*\(\)\s*->"),
    ("selectRaw with request() helper", r"->selectRaw\s*\(\s*request\s*\(\)\s*->"),
    ("orderByRaw with request() helper", r"->orderByRaw\s*\(\s*request\s*\(\)\s*->"),
    ("DB::raw with request() helper", r"DB::raw\s*\(\s*.*request\s*\(\)\s*->"),
)

# ---------------------------------------------------------------------------
# Mass assignment
# ---------------------------------------------------------------------------

MASS_ASSIGNMENT_HIGH_PATTERNS: PatternTable = (
    ("create with $request->all()", r"({models})::create\s*\(\s*\$request->all\(\)"),
    ("update with $request->all()", r"->update\s*\(\s*\$request->all\(\)"),
    ("fill with $request->all()", r"->fill\s*\(\s*\$request->all\(\)"),
    ("create with $request->input()", r"({models})::create\s*\(\s*\$request->input\(\)"),
    ("update with $request->input()", r"->update\s*\(\s*\$request->input\(\)"),
    ("fill with $request->input()", r"->fill\s*\(\s*\$request->input\(\)"),
    ("create with request()->all()", r"({models})::create\s*\(\s*request\(\)->all\(\)"),
    ("update with request()->all()", r"->update\s*\(\s*request\(\)->all\(\)"),
    ("fill with request()->all()", r"->fill\s*\(\s*request\(\)->all\(\)"),
)

MASS_ASSIGNMENT_MEDIUM_PATTERNS: PatternTable = (
    ("create with $request->validated()", r"({models})::create\s*\(\s*\$request->validated\(\)"),
    ("update with $request->validated()", r"->update\s*\(\s*\$request->validated\(\)"),
    ("fill with $request->validated()", r"->fill\s*\(\s*\$request->validated\(\)"),
    ("create with request()->validated()", r"({models})::create\s*\(\s*request\(\)->validated\(\)"),
    ("update with request()->validated()", r"->update\s*\(\s*request\(\)->validated\(\)"),
    ("fill with request()->validated()", r"->fill\s*\(\s*request\(\)->validated\(\)"),
)

MODEL_CONTEXT_TEMPLATE = r"({models})\s"
MODEL_BACKSCAN_LINES = 10

# ---------------------------------------------------------------------------
# Model source properties
# ---------------------------------------------------------------------------

CLASS_NAME_RE = re.compile(r"class\s+(\w+)")
EXTENDS_MODEL_RE = re.compile(r"extends\s+(Model|Authenticatable|Pivot)\b")
FILLABLE_PRESENT_RE = re.compile(r"\$fillable\s*=\s*\[")
FILLABLE_BLOCK_RE = re.compile(r"\$fillable\s*=\s*\[(.*?)\]", re.DOTALL)
GUARDED_EMPTY_RE = re.compile(r"\$guarded\s*=\s*\[\s*\]")
QUOTED_STRING_RE = re.compile(r"""['"]([^'"]+)['"]""")

# ---------------------------------------------------------------------------
# Controller authorization
# ---------------------------------------------------------------------------

AUTHORIZE_CALL_RE = re.compile(
    r"(\$this->authorize\(|Gate::authorize\(|Gate::allows\(|Gate::denies\(|"
    r"Gate::check\(|\$this->authorizeResource\(|can\(|cannot\()"
)
AUTHORIZE_RESOURCE_RE = re.compile(r"\$this->authorizeResource\(")
FORM_REQUEST_BASE_RE = re.compile(r"extends\s+\\?(?:[\w\\]*\\)?FormRequest\b")
PARAMETER_TYPE_RE = re.compile(r"^\s*\??(\\?[A-Za-z_][\w\\]*)\s+&?(?:\.\.\.)?\$\w+")

BUILTIN_TYPES = frozenset({
    "array", "bool", "callable", "float", "int", "iterable", "mixed",
    "object", "string", "self", "static", "null", "false", "true",
})

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def compile_table(table: PatternTable) -> List[Tuple[str, Pattern[str]]]:
    return [(label, re.compile(regex)) for label, regex in table]


def compile_model_table(table: PatternTable, model_names: Sequence[str]) -> List[Tuple[str, Pattern[str]]]:
    """Compile a mass-assignment table for the given model class names."""
    alternation = "|".join(re.escape(name) for name in model_names)
    return [(label, re.compile(regex.replace("{models}", alternation))) for label, regex in table]
