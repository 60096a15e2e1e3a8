from sqlalchemy.dialects import postgresql

from app.services.queries import ticket_query


def test_locked_ticket_query_locks_only_base_table():
    sql = str(ticket_query(1, lock=True).compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE OF tickets" in sql


def test_plain_ticket_query_has_no_lock():
    sql = str(ticket_query(1).compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" not in sql
