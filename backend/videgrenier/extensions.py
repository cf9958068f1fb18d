# Overview: Flask extension instances for database and migrations.

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()


# pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
# nesting and lets foreign keys go unchecked. Hand transaction control to
# SQLAlchemy and turn foreign keys on for every SQLite connection.
@event.listens_for(Engine, "connect")
def _configure_sqlite_connection(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(Engine, "begin")
def _begin_sqlite_transaction(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")
