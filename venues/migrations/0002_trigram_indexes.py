"""Enable pg_trgm and add GIN trigram indexes for fuzzy venue search.

PostgreSQL only; other backends compute similarity in Python.
"""

from django.db import migrations

FORWARD_SQL = [
    "CREATE EXTENSION IF NOT EXISTS pg_trgm;",
    "CREATE INDEX IF NOT EXISTS venue_normalized_trgm_idx ON venues_venue USING gin (normalized_name gin_trgm_ops);",
    "CREATE INDEX IF NOT EXISTS alias_normalized_trgm_idx ON venues_venuealias USING gin (normalized_alias gin_trgm_ops);",
]

REVERSE_SQL = [
    "DROP INDEX IF EXISTS alias_normalized_trgm_idx;",
    "DROP INDEX IF EXISTS venue_normalized_trgm_idx;",
]


def _run(statements):
    def operation(apps, schema_editor):
        if schema_editor.connection.vendor != 'postgresql':
            return
        for statement in statements:
            schema_editor.execute(statement)
    return operation


class Migration(migrations.Migration):

    dependencies = [
        ('venues', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(_run(FORWARD_SQL), _run(REVERSE_SQL)),
    ]
