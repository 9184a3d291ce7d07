from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import backoffice.models  # noqa: F401
from backoffice.core.config import settings
from backoffice.core.security import create_access_token
from backoffice.db.database import Base, configure_sqlite, get_db
from backoffice.main import app
from backoffice.models.inventory import Product, Store, StoreKind
from backoffice.models.user import User, UserRole
from backoffice.schemas.warehouse import (
    DistributionItemIn,
    MasterCategoryCreate,
    MasterProductCreate,
    MasterSupplierCreate,
)
from backoffice.services import catalog


@pytest.fixture
def engine():
    engine = configure_sqlite(
        create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


def _add(db, row):
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def warehouse(db):
    return catalog.ensure_warehouse(db)


@pytest.fixture
def store(db):
    return _add(db, Store(code="TK001", name="Toko Maju", kind=StoreKind.RETAIL))


@pytest.fixture
def other_store(db):
    return _add(db, Store(code="TK002", name="Toko Baru", kind=StoreKind.RETAIL))


@pytest.fixture
def make_user(db):
    def _make(username, role, store_id=None, is_active=True):
        return _add(
            db,
            User(username=username, name=username.title(), role=role, store_id=store_id, is_active=is_active),
        )

    return _make


@pytest.fixture
def manager(make_user):
    return make_user("manager", UserRole.MANAGER)


@pytest.fixture
def warehouse_user(make_user):
    return make_user("gudang", UserRole.WAREHOUSE)


@pytest.fixture
def admin(make_user, store):
    return make_user("admin1", UserRole.ADMIN, store.id)


@pytest.fixture
def other_admin(make_user, other_store):
    return make_user("admin2", UserRole.ADMIN, other_store.id)


@pytest.fixture
def cashier(make_user, store):
    return make_user("kasir", UserRole.CASHIER, store.id)


@pytest.fixture
def master(db, warehouse, manager):
    """Master catalog with one category, one supplier and three products."""
    category = catalog.create_master_category(db, MasterCategoryCreate(name="Minuman"), manager)
    supplier = catalog.create_master_supplier(
        db,
        MasterSupplierCreate(code="sup01", name="PT Sumber Air", phone="021555"),
        manager,
    )
    products = [
        catalog.create_master_product(
            db,
            MasterProductCreate(
                product_code=code,
                name=name,
                category_id=category.id,
                supplier_id=supplier.id,
                purchase_price=Decimal(price),
                retail_price=Decimal(price) * 2,
                stock=100,
            ),
            manager,
        )
        for code, name, price in (
            ("M1", "Air Mineral", "900"),
            ("M2", "Teh Botol", "2500"),
            ("M3", "Kopi Susu", "4000"),
        )
    ]
    return {"category": category, "supplier": supplier, "products": products}


@pytest.fixture
def item():
    def _item(product, quantity, unit_price=None):
        return DistributionItemIn(
            master_product_id=product.id,
            quantity=quantity,
            unit_price=Decimal(unit_price) if unit_price is not None else None,
        )

    return _item


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        return db.scalar(select(Product.stock).where(Product.id == product_id))

    return _stock


@pytest.fixture
def mirror_of(db):
    def _mirror(store_id, product_code):
        return db.scalar(select(Product).where(Product.store_id == store_id, Product.product_code == product_code))

    return _mirror


@pytest.fixture
def count(db):
    def _count(model, *criteria):
        query = select(func.count()).select_from(model)
        if criteria:
            query = query.where(*criteria)
        return db.scalar(query)

    return _count


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(user, **kwargs):
        token = create_access_token(str(user.id), user.role.value, user.store_id, **kwargs)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def credit_at(monkeypatch):
    def _set(point):
        monkeypatch.setattr("backoffice.services.stock.settings", replace(settings, stock_credit_point=point))

    return _set
