from sqlalchemy import func, insert, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cvbuilder.core.database import create_database_engine, is_memory_sqlite, metadata, users


def test_memory_urls_are_detected():
    assert is_memory_sqlite("sqlite://")
    assert is_memory_sqlite("sqlite:///:memory:")
    assert not is_memory_sqlite("sqlite:///var/data/cvbuilder.db")
    assert not is_memory_sqlite("postgresql://db/cvbuilder")


def test_in_memory_sqlite_shares_one_connection():
    engine = create_database_engine("sqlite://")
    try:
        assert isinstance(engine.pool, StaticPool)
    finally:
        engine.dispose()


def test_file_sqlite_sessions_do_not_share_a_transaction(tmp_path):
    engine = create_database_engine(f"file:{tmp_path / 'cvbuilder.db'}")
    try:
        assert not isinstance(engine.pool, StaticPool)
        metadata.create_all(engine)
        Session = sessionmaker(bind=engine)

        writer = Session()
        reader = Session()
        try:
            writer.execute(insert(users).values(user_id="u1"))
            # Uncommitted writes stay inside the writer's transaction
            assert reader.execute(select(func.count()).select_from(users)).scalar() == 0
            reader.rollback()

            writer.commit()
            assert reader.execute(select(func.count()).select_from(users)).scalar() == 1
        finally:
            writer.close()
            reader.close()
    finally:
        engine.dispose()
