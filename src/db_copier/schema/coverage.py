"""Coverage validation: every table and data column must be handled explicitly.

A copy run must name every table in the source schema (or skip it), and
every table spec must cover every data column (non-PK, non-FK; keys are
passed through automatically).  Failures list every offender together with
a copy-pastable snippet.
"""

from typing import Iterable, Mapping

from db_copier.spec.models import TableSpec


class CoverageError(ValueError):
    """Raised when table specs do not cover the source schema."""


class UnknownColumnsError(ValueError):
    """Raised when a table spec references columns missing from the source."""


def table_snippet(table: str, columns: Iterable[str]) -> str:
    """Code snippet for a table spec passing every given column through.

    Example:
        >>> print(table_snippet("users", ["email"]))
        "users": TableSpec.select(lambda row: [
            row["email"],
        ]),
    """
    lines = [f'"{table}": TableSpec.select(lambda row: [']
    lines.extend(f'    row["{column}"],' for column in columns)
    lines.append("]),")
    return "\n".join(lines)


def column_snippets(columns: Iterable[str]) -> str:
    """Snippet lines for missing columns, sorted by name."""
    return "\n    ".join(f'row["{column}"],' for column in sorted(columns))


class CoverageValidator:
    """Checks table specs against source schema metadata.

    Args:
        all_columns: Column names per table, in ordinal order
        primary_keys: Primary key columns per table
        fk_columns: Foreign key columns per table
    """

    def __init__(
        self,
        all_columns: Mapping[str, Iterable[str]],
        primary_keys: Mapping[str, Iterable[str]],
        fk_columns: Mapping[str, Iterable[str]],
    ):
        self._all_columns = {table: list(cols) for table, cols in all_columns.items()}
        self._primary_keys = {table: set(cols) for table, cols in primary_keys.items()}
        self._fk_columns = {table: set(cols) for table, cols in fk_columns.items()}

    def data_columns(self, table: str) -> list[str]:
        """Columns a spec must handle explicitly: neither PK nor FK columns."""
        keys = self._primary_keys.get(table, set()) | self._fk_columns.get(table, set())
        return [col for col in self._all_columns.get(table, []) if col not in keys]

    def ensure_all_tables(
        self,
        tables: Iterable[str],
        skipped_tables: Iterable[str],
        specified_tables: Iterable[str],
    ) -> None:
        """Raise ``CoverageError`` naming every non-skipped table without a spec."""
        skipped = set(skipped_tables)
        specified = set(specified_tables)
        missing = [t for t in tables if t not in skipped and t not in specified]
        if not missing:
            return

        snippets = ",\n\n".join(table_snippet(t, self.data_columns(t)) for t in missing)
        skip_list = ", ".join(f'"{t}"' for t in missing)
        raise CoverageError(
            f"Missing table specs for {len(missing)} table(s).\n\n"
            f"Add these tables to copier.run(...):\n\n"
            f"{snippets}\n\n"
            f"Or skip them via DbCopier(skipped_tables=[{skip_list}])\n"
        )

    def ensure_all_columns(self, specs: Mapping[str, TableSpec]) -> None:
        """Raise ``CoverageError`` naming every spec missing data columns."""
        failures = []
        for table, spec in specs.items():
            missing = spec.missing_columns(self.data_columns(table))
            if missing:
                failures.append((table, missing))
        if not failures:
            return

        messages = [
            f"Table '{table}' is missing {len(missing)} column(s). Add these:\n"
            f"    {column_snippets(missing)}"
            for table, missing in failures
        ]
        raise CoverageError(
            f"Table specs are missing columns for {len(failures)} table(s).\n\n"
            + "\n\n".join(messages)
            + "\n"
        )

    def ensure_known_columns(self, specs: Mapping[str, TableSpec]) -> None:
        """Raise ``UnknownColumnsError`` naming every spec column absent from the source."""
        failures = []
        for table, spec in specs.items():
            if table not in self._all_columns:
                failures.append(f"Table '{table}': table does not exist")
                continue
            known = set(self._all_columns[table])
            unknown = [name for name in spec.column_names if name not in known]
            if unknown:
                failures.append(f"Table '{table}': {', '.join(unknown)}")
        if failures:
            raise UnknownColumnsError(
                "Table specs reference columns that do not exist in the source database:\n  "
                + "\n  ".join(failures)
            )
