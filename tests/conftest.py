"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator
from core.config import Settings
from core.database import create_session_maker
from ingestion.runner import ETLRunner
from ingestion.staging import StagingStore
from models.base import Base, SourceBase
from schemas.records import Customer, Product


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file"""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}",
        SOURCE_DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'source.db'}",
        CSV_PATH=str(tmp_path / "data"),
        STAGING_PATH=str(tmp_path / "staging"),
        API_BASE_URL="",
        API_KEY=None,
        ENVIRONMENT="test",
        RECORD_RUN_HISTORY=False,
        STAGING_RETENTION=0,
    )


@pytest.fixture
def staging(tmp_path) -> StagingStore:
    """Empty staging store in a temporary directory"""
    return StagingStore(tmp_path / "staging")


@pytest.fixture
def csv_dir(tmp_path):
    """Directory the CSV extractors read from"""
    path = tmp_path / "data"
    path.mkdir()
    return path


async def _sqlite_session_maker(path, metadata):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    return engine, create_session_maker(engine)


@pytest_asyncio.fixture(scope="function")
async def destination_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Analytics destination with all tables created"""
    engine, session_maker = await _sqlite_session_maker(tmp_path / "analytics.db", Base.metadata)
    yield session_maker
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def source_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Relational source database with the reviews table created"""
    engine, session_maker = await _sqlite_session_maker(tmp_path / "source.db", SourceBase.metadata)
    yield session_maker
    await engine.dispose()


@pytest.fixture
def sample_customers():
    """Customers as they arrive from the CSV source"""
    return [
        Customer(customer_id=1, first_name="Ana", last_name="Lee", email="ana@example.com"),
        Customer(customer_id=2, first_name="Ben", last_name=None, city="Porto"),
        Customer(customer_id=3, first_name=None, last_name=None, country="PT"),
    ]


@pytest.fixture
def sample_products():
    """Products including a negative price and a duplicate key"""
    return [
        Product(product_id=10, product_name="Lamp", price="19.99", stock=4),
        Product(product_id=11, product_name="Desk", price="-5.00", stock=1),
        Product(product_id=10, product_name="Lamp (dup)", price="21.00", stock=2),
        Product(product_id=12, product_name="Chair", price=None),
    ]


@pytest.fixture
def csv_sources(csv_dir):
    """CSV files for all four entities; one blank-named customer, one duplicate, one negative price"""
    (csv_dir / "customers.csv").write_text(
        "CustomerID,FirstName,LastName,Email,City,Country\n"
        "1,Ana,Lee,ana@example.com,Porto,PT\n"
        "2,,,nobody@example.com,Lisbon,PT\n"
        "3,Ben,Ng,ben@example.com,Madrid,ES\n"
        "1,Ana,Duplicate,dup@example.com,Porto,PT\n",
        encoding="utf-8",
    )
    (csv_dir / "products.csv").write_text(
        "ProductID,ProductName,Category,Price,Stock\n"
        "10,Lamp,Home,19.99,4\n"
        "11,Broken,Home,-1.00,0\n",
        encoding="utf-8",
    )
    (csv_dir / "orders.csv").write_text(
        "OrderID,CustomerID,OrderDate,Status\n"
        "100,1,2024-01-05,shipped\n"
        "101,3,2024-01-06,new\n",
        encoding="utf-8",
    )
    (csv_dir / "order_details.csv").write_text(
        "OrderDetailID,OrderID,ProductID,Quantity,TotalPrice\n"
        "1000,100,10,2,39.98\n"
        "1001,101,10,1,19.99\n",
        encoding="utf-8",
    )
    return csv_dir


@pytest.fixture
def make_runner(test_settings, source_session_maker, destination_session_maker):
    """Factory for runners wired to the test databases and staging directory"""
    def factory(**overrides) -> ETLRunner:
        options = {
            "settings": test_settings,
            "staging": StagingStore(test_settings.STAGING_PATH),
            "source_session_maker": source_session_maker,
            "destination_session_maker": destination_session_maker,
        }
        options.update(overrides)
        return ETLRunner(**options)

    return factory
