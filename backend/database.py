from sqlalchemy import create_engine, text
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import OperationalError
import logging
import time

from config import DATABASE_URL, DB_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = DATABASE_URL


def engine_options(url: str) -> dict:
    """
    Параметры движка с ограниченным таймаутом: запрос к базе не должен
    зависать дольше DB_TIMEOUT_SECONDS.
    """
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS},
        }
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_timeout": DB_TIMEOUT_SECONDS,
        "connect_args": {
            "connect_timeout": DB_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={DB_TIMEOUT_SECONDS * 1000}",
        },
    }


def wait_for_db(max_retries=30, retry_interval=2):
    logger.info("Ожидание подключения к базе данных...")

    for attempt in range(max_retries):
        try:
            temp_engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options(SQLALCHEMY_DATABASE_URL))
            with temp_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("База данных доступна")
            temp_engine.dispose()
            return True
        except OperationalError as e:
            logger.warning(f"Попытка {attempt + 1}/{max_retries}: база данных еще не доступна. Ошибка: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_interval)

    logger.error("Не удалось подключиться к базе данных после всех попыток")
    return False


engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    echo=False,
    **engine_options(SQLALCHEMY_DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


KITCHENS = [
    {"id": "k1", "name": "Main Kitchen", "location": "Ground floor"},
    {"id": "k2", "name": "Bar Kitchen", "location": "Terrace"},
]

KITCHEN_SECTIONS = [
    {"id": "grill", "name": "Grill Station", "color": "#e4572e", "kitchen_id": "k1", "printer_ip": "192.168.1.50"},
    {"id": "salad", "name": "Salad Station", "color": "#76b041", "kitchen_id": "k1", "printer_ip": None},
    {"id": "beverage", "name": "Beverage Station", "color": "#17bebb", "kitchen_id": "k2", "printer_ip": "192.168.1.51"},
    {"id": "dessert", "name": "Dessert Station", "color": "#ffc914", "kitchen_id": "k2", "printer_ip": None},
]

MENU_ITEMS = [
    {"id": "grill-1", "name": "Grilled Chicken Breast", "section": "grill", "kitchen_id": "k1", "cooking_time": 15, "price": 24.99},
    {"id": "grill-2", "name": "Beef Steak", "section": "grill", "kitchen_id": "k1", "cooking_time": 20, "price": 34.99},
    {"id": "grill-3", "name": "Grilled Salmon", "section": "grill", "kitchen_id": "k1", "cooking_time": 12, "price": 28.99},
    {"id": "grill-4", "name": "BBQ Ribs", "section": "grill", "kitchen_id": "k1", "cooking_time": 25, "price": 29.99},
    {"id": "salad-1", "name": "Caesar Salad", "section": "salad", "kitchen_id": "k1", "cooking_time": 5, "price": 12.99},
    {"id": "salad-2", "name": "Greek Salad", "section": "salad", "kitchen_id": "k1", "cooking_time": 5, "price": 14.99},
    {"id": "salad-3", "name": "Quinoa Bowl", "section": "salad", "kitchen_id": "k1", "cooking_time": 8, "price": 16.99},
    {"id": "beverage-1", "name": "Fresh Orange Juice", "section": "beverage", "kitchen_id": "k2", "cooking_time": 2, "price": 6.99},
    {"id": "beverage-2", "name": "Cappuccino", "section": "beverage", "kitchen_id": "k2", "cooking_time": 3, "price": 4.99},
    {"id": "beverage-3", "name": "Iced Tea", "section": "beverage", "kitchen_id": "k2", "cooking_time": 1, "price": 3.99},
    {"id": "dessert-1", "name": "Chocolate Cake", "section": "dessert", "kitchen_id": "k2", "cooking_time": 2, "price": 8.99},
    {"id": "dessert-2", "name": "Tiramisu", "section": "dessert", "kitchen_id": "k2", "cooking_time": 3, "price": 9.99},
]


def init_menu_catalog(db=None):
    """Заполняет справочник кухонь, станций и блюд, если он пуст"""
    from models import Kitchen, KitchenSection, MenuItem
    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        if db.query(Kitchen).count() == 0:
            for kitchen in KITCHENS:
                db.add(Kitchen(**kitchen))
            for section in KITCHEN_SECTIONS:
                db.add(KitchenSection(**section))
            for item in MENU_ITEMS:
                db.add(MenuItem(**item))
            db.commit()
            logger.info(f"Создан справочник меню: {len(KITCHENS)} кухни, {len(MENU_ITEMS)} блюд")
        else:
            logger.info("Справочник меню уже заполнен")
    except Exception as e:
        logger.error(f"Ошибка при инициализации справочника меню: {e}")
        db.rollback()
        raise
    finally:
        if own_session:
            db.close()
