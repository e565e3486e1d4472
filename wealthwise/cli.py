import click
from sqlalchemy.schema import CreateIndex, CreateTable

from .models import db
from .seed import seed_database


def schema_statements(engine):
    statements = []
    for table in db.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(engine)).strip() + ';')
        for index in sorted(table.indexes, key=lambda item: item.name or ''):
            statements.append(str(CreateIndex(index).compile(engine)).strip() + ';')
    return statements


def register_commands(app):
    @app.cli.command('print-schema')
    def print_schema():
        """Print the table and index DDL for the configured database."""
        click.echo('-- Run these statements against the content store.')
        for statement in schema_statements(db.engine):
            click.echo(statement)
            click.echo('')

    @app.cli.command('seed')
    def seed():
        """Insert the sample blog posts that are missing."""
        inserted = seed_database()
        click.echo(f'Inserted {inserted} sample post(s).')
