from fastapi import FastAPI, Depends, HTTPException, status, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
import logging
import uvicorn

import models
import auth
from access import (
    get_user_dashboards,
    has_kitchen_access,
    landing_route,
    require_dashboard,
    require_kitchen_access,
)
from config import APP_NAME, CORS_ORIGINS, LOG_LEVEL, REFRESH_INTERVAL_SECONDS
from database import engine, get_db, init_menu_catalog, wait_for_db
from domain import ItemSnapshot, ItemStatus, UserRole, utc_now
from errors import AccessDeniedError, KitchenError, NotFoundError, status_for_code
from kitchen_display import KitchenDisplayService, SnapshotRefresher
from kot import print_kot
from order_store import (
    BatchStatusResult,
    ItemStatusResult,
    OrderStore,
    StoreEvent,
    snapshot_item,
)
from priority_engine import BatchCookingSuggestion, KitchenTicket
from redis_client import redis_client, rate_limit
from schemas import (
    BatchItemStatusUpdate,
    BatchStatusResponse,
    BatchSuggestionResponse,
    DashboardsResponse,
    DashboardStats,
    ItemPriorityUpdate,
    ItemStatusResultResponse,
    ItemStatusUpdate,
    KitchenBoardResponse,
    KitchenResponse,
    KitchenSectionResponse,
    KitchenTicketResponse,
    KotResponse,
    MenuItemResponse,
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    PasswordChange,
    UserCreate,
    UserLogin,
    UserResponse,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KitchenError)
async def kitchen_error_handler(request: Request, exc: KitchenError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error_code": exc.error_code})


@app.on_event("startup")
def startup_event():
    # Сначала дожидаемся готовности базы данных
    if wait_for_db():
        try:
            models.Base.metadata.create_all(bind=engine)
            init_menu_catalog()
            logger.info("База данных успешно инициализирована")
        except Exception as e:
            logger.error(f"Ошибка при создании/инициализации базы данных: {e}")
    else:
        logger.error("Не удалось дождаться готовности базы данных при старте сервиса")

    if redis_client.is_available():
        logger.info("Redis доступен")
    else:
        logger.warning("Redis недоступен, кеширование и события отключены")


# ========== Зависимости ==========

def get_clock():
    return utc_now


def publish_store_event(event: StoreEvent):
    redis_client.publish_event(event.kind, {
        "item_ids": list(event.item_ids),
        "order_id": event.order_id,
        "status": event.status,
    })
    redis_client.invalidate_kitchen_boards()


def get_order_store(db: Session = Depends(get_db), clock=Depends(get_clock)) -> OrderStore:
    return OrderStore(db, clock=clock, listeners=[publish_store_event])


def get_kitchen_display(store: OrderStore = Depends(get_order_store), clock=Depends(get_clock)) -> KitchenDisplayService:
    return KitchenDisplayService(store, clock=clock)


async def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = authorization.replace("Bearer ", "")
    payload = auth.verify_token(token)

    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(models.User).filter(models.User.username == username).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")

    return user


# Последняя опубликованная доска по каждой кухне; устаревшие пересчеты отбрасываются
board_refreshers: Dict[str, SnapshotRefresher] = {}


def get_board_refresher(board_key: str) -> SnapshotRefresher:
    if board_key not in board_refreshers:
        board_refreshers[board_key] = SnapshotRefresher(
            on_publish=lambda board: redis_client.cache_kitchen_board(
                board_key, jsonable_encoder(board), ttl=REFRESH_INTERVAL_SECONDS
            )
        )
    return board_refreshers[board_key]


# ========== Преобразование в ответы ==========

def user_response(user: models.User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        kitchen_access=user.kitchen_access,
        is_active=user.is_active,
        last_login=user.last_login,
    )


def item_response(item: ItemSnapshot) -> OrderItemResponse:
    return OrderItemResponse(
        id=item.id,
        menu_item_id=item.menu_item_id,
        menu_item_name=item.menu_item.name,
        section=item.section,
        kitchen_id=item.kitchen_id,
        price=item.menu_item.price,
        quantity=item.quantity,
        table_number=item.table_number,
        status=item.status,
        priority=item.priority,
        order_time=item.order_time,
        cooking_start_time=item.cooking_start_time,
        ready_time=item.ready_time,
        served_time=item.served_time,
        special_instructions=item.special_instructions,
    )


def order_response(store: OrderStore, order: models.Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        table_number=order.table_number,
        status=order.status,
        order_time=order.order_time,
        total=order.total,
        customer_name=order.customer_name,
        notes=order.notes,
        items=[item_response(snapshot_item(item)) for item in order.items],
        progress=store.order_progress(order),
    )


def ticket_response(ticket: KitchenTicket) -> KitchenTicketResponse:
    return KitchenTicketResponse(
        item=item_response(ticket.item),
        customer_name=ticket.item.customer_name,
        elapsed_minutes=ticket.elapsed_minutes,
        urgency=ticket.urgency.value,
    )


def suggestion_response(suggestion: BatchCookingSuggestion) -> BatchSuggestionResponse:
    return BatchSuggestionResponse(
        menu_item_id=suggestion.menu_item_id,
        menu_item_name=suggestion.menu_item_name,
        total_quantity=suggestion.total_quantity,
        order_ids=list(suggestion.order_ids),
        table_numbers=list(suggestion.table_numbers),
        avg_wait_time=round(suggestion.avg_wait_time, 2),
        can_batch=suggestion.can_batch,
        kitchen_id=suggestion.kitchen_id,
    )


def result_response(result: ItemStatusResult) -> ItemStatusResultResponse:
    return ItemStatusResultResponse(
        item_id=result.item_id,
        success=result.success,
        status=result.status,
        error_code=result.error_code,
        message=result.message,
    )


def batch_response(batch: BatchStatusResult) -> BatchStatusResponse:
    return BatchStatusResponse(
        status=batch.status,
        success=batch.success,
        summary=batch.summary(),
        succeeded_ids=batch.succeeded_ids,
        failed=[result_response(result) for result in batch.failed],
        results=[result_response(result) for result in batch.results],
    )


def require_status_permission(user: models.User, target: ItemStatus):
    # Подачу отмечает капитан, все остальное - кухня
    if target == ItemStatus.SERVED:
        require_dashboard(user, "captain")
    else:
        require_dashboard(user, "kitchen")


# ========== Служебные ==========

@app.get("/")
def read_root():
    return {"message": "Restaurant kitchen API is working!"}


@app.get("/health")
def health_check():
    return {"status": "ok", "message": "API is running"}


@app.get("/cache/info")
def get_cache_info():
    """Получить информацию о состоянии кеша"""
    return redis_client.get_cache_info()


# ========== Сессия и пользователи ==========

@app.post("/login")
@rate_limit(max_requests=10, window=60, key_prefix="login")
async def login(credentials: UserLogin, request: Request, db: Session = Depends(get_db)):
    logger.info(f"Вход пользователя: {credentials.username}")
    db_user = auth.authenticate_user(db, credentials.username, credentials.password)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    access_token = auth.create_access_token(data={"sub": db_user.username, "role": db_user.role})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": jsonable_encoder(user_response(db_user)),
        "landing_route": landing_route(db_user),
    }


@app.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    return user_response(current_user)


@app.get("/me/dashboards", response_model=DashboardsResponse)
def get_my_dashboards(current_user: models.User = Depends(get_current_user)):
    return DashboardsResponse(dashboards=get_user_dashboards(current_user), landing_route=landing_route(current_user))


@app.get("/users", response_model=List[UserResponse])
def get_users(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "users")
    return [user_response(user) for user in db.query(models.User).order_by(models.User.id).all()]


@app.post("/users", response_model=UserResponse)
def create_user(user: UserCreate, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "users")
    if user.role == UserRole.ADMIN.value and current_user.role != UserRole.ADMIN.value:
        raise AccessDeniedError("Only administrators can create administrators")

    if db.query(models.User).filter(models.User.username == user.username).first():
        raise HTTPException(status_code=400, detail="Username already registered")

    kitchens = []
    if user.kitchen_access:
        kitchens = db.query(models.Kitchen).filter(models.Kitchen.id.in_(user.kitchen_access)).all()
        missing = set(user.kitchen_access) - {kitchen.id for kitchen in kitchens}
        if missing:
            raise NotFoundError(f"Unknown kitchens: {', '.join(sorted(missing))}")

    db_user = models.User(
        username=user.username,
        email=user.email,
        password=auth.get_password_hash(user.password),
        role=user.role,
        kitchens=kitchens,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Пользователь создан: {db_user.id} ({db_user.role})")
    return user_response(db_user)


@app.put("/users/{user_id}/password")
def change_password(
    user_id: int,
    password_data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    if current_user.id != user_id:
        raise HTTPException(status_code=403, detail="You can only change your own password")

    current_user.password = auth.get_password_hash(password_data.new_password)
    db.commit()
    return {"message": "Password updated successfully"}


# ========== Справочники ==========

@app.get("/menu", response_model=List[MenuItemResponse])
def get_menu(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    cached_menu = redis_client.get_cached_menu()
    if cached_menu:
        return [MenuItemResponse(**item) for item in cached_menu]

    items = db.query(models.MenuItem).order_by(models.MenuItem.section, models.MenuItem.id).all()
    menu = [
        MenuItemResponse(
            id=item.id,
            name=item.name,
            section=item.section,
            kitchen_id=item.kitchen_id,
            cooking_time=item.cooking_time,
            price=float(item.price),
        )
        for item in items
    ]
    redis_client.cache_menu([jsonable_encoder(item) for item in menu])
    return menu


@app.get("/kitchens", response_model=List[KitchenResponse])
def get_kitchens(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    cached = redis_client.get_cached_kitchens()
    if cached is None:
        kitchens = db.query(models.Kitchen).filter(models.Kitchen.is_active == True).order_by(models.Kitchen.id).all()
        cached = [
            {"id": k.id, "name": k.name, "location": k.location, "is_active": k.is_active}
            for k in kitchens
        ]
        redis_client.cache_kitchens(cached)

    return [KitchenResponse(**k) for k in cached if has_kitchen_access(current_user, k["id"])]


@app.get("/kitchens/sections", response_model=List[KitchenSectionResponse])
def get_kitchen_sections(kitchen_id: Optional[str] = None, db: Session = Depends(get_db),
                         current_user: models.User = Depends(get_current_user)):
    query = db.query(models.KitchenSection)
    if kitchen_id:
        query = query.filter(models.KitchenSection.kitchen_id == kitchen_id)
    return [
        KitchenSectionResponse(id=s.id, name=s.name, color=s.color, kitchen_id=s.kitchen_id, printer_ip=s.printer_ip)
        for s in query.order_by(models.KitchenSection.id).all()
        if has_kitchen_access(current_user, s.kitchen_id)
    ]


# ========== Заказы (капитан) ==========

@app.post("/orders", response_model=OrderResponse)
def create_order(order: OrderCreate, store: OrderStore = Depends(get_order_store),
                 current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    db_order = store.create_order(
        table_number=order.table_number,
        items=[item.dict() for item in order.items],
        customer_name=order.customer_name,
        notes=order.notes,
    )
    return order_response(store, db_order)


@app.get("/orders", response_model=List[OrderResponse])
def get_orders(search: Optional[str] = None, table_number: Optional[int] = None,
               store: OrderStore = Depends(get_order_store),
               current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    return [order_response(store, order) for order in store.list_active_orders(search=search, table_number=table_number)]


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, store: OrderStore = Depends(get_order_store),
              current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    return order_response(store, store.get_order(order_id))


@app.put("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: int, update: OrderStatusUpdate, store: OrderStore = Depends(get_order_store),
                        current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    return order_response(store, store.update_order_status(order_id, update.status))


@app.post("/orders/{order_id}/kot", response_model=KotResponse)
def print_order_kot(order_id: int, section: Optional[str] = None, db: Session = Depends(get_db),
                    store: OrderStore = Depends(get_order_store), clock=Depends(get_clock),
                    current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    ticket = print_kot(db, store.get_order(order_id), section=section, now=clock())
    return jsonable_encoder(ticket)


# ========== Кухня ==========

def visible_tickets(user: models.User, tickets: List[KitchenTicket]) -> List[KitchenTicket]:
    return [ticket for ticket in tickets if has_kitchen_access(user, ticket.item.kitchen_id)]


@app.get("/kitchen/items", response_model=List[KitchenTicketResponse])
def get_kitchen_items(kitchen_id: Optional[str] = None, section_id: Optional[str] = None,
                      display: KitchenDisplayService = Depends(get_kitchen_display),
                      current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "kitchen")
    if kitchen_id:
        require_kitchen_access(current_user, kitchen_id)
    tickets = display.list_active_items(kitchen_id=kitchen_id, section_id=section_id)
    return [ticket_response(ticket) for ticket in visible_tickets(current_user, tickets)]


@app.get("/kitchen/batch-suggestions", response_model=List[BatchSuggestionResponse])
def get_batch_suggestions(kitchen_id: Optional[str] = None,
                          display: KitchenDisplayService = Depends(get_kitchen_display),
                          current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "kitchen")
    if kitchen_id:
        require_kitchen_access(current_user, kitchen_id)
    return [
        suggestion_response(suggestion)
        for suggestion in display.list_batch_suggestions(kitchen_id=kitchen_id)
        if has_kitchen_access(current_user, suggestion.kitchen_id)
    ]


@app.get("/kitchen/board", response_model=KitchenBoardResponse)
def get_kitchen_board(kitchen_id: Optional[str] = None, section_id: Optional[str] = None,
                      display: KitchenDisplayService = Depends(get_kitchen_display),
                      current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "kitchen")
    if kitchen_id:
        require_kitchen_access(current_user, kitchen_id)

    def load_board():
        board = display.board(kitchen_id=kitchen_id, section_id=section_id)
        return KitchenBoardResponse(
            generated_at=board["generated_at"],
            refresh_interval_seconds=REFRESH_INTERVAL_SECONDS,
            tickets=[ticket_response(t) for t in visible_tickets(current_user, board["tickets"])],
            batch_suggestions=[
                suggestion_response(s) for s in board["batch_suggestions"]
                if has_kitchen_access(current_user, s.kitchen_id)
            ],
        )

    board_key = f"{current_user.id}:{kitchen_id or 'all'}:{section_id or 'all'}"
    # доска из кеша живет один интервал обновления и сбрасывается при любом изменении заказов
    cached = redis_client.get_cached_kitchen_board(board_key)
    if cached is not None:
        return cached

    refresher = get_board_refresher(board_key)
    board, _ = refresher.refresh(load_board)
    return board


@app.post("/kitchen/batches/{menu_item_id}/start", response_model=BatchStatusResponse)
def start_batch_cooking(menu_item_id: str, display: KitchenDisplayService = Depends(get_kitchen_display),
                        current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "kitchen")
    suggestion = display.find_suggestion(menu_item_id)
    require_kitchen_access(current_user, suggestion.kitchen_id)
    return batch_response(display.apply_batch(suggestion))


# ========== Статусы позиций ==========

@app.put("/items/{item_id}/status", response_model=ItemStatusResultResponse)
def update_item_status(item_id: int, update: ItemStatusUpdate, store: OrderStore = Depends(get_order_store),
                       current_user: models.User = Depends(get_current_user)):
    require_status_permission(current_user, update.status)
    if update.status != ItemStatus.SERVED:
        require_kitchen_access(current_user, store.item_kitchen(item_id))

    result = store.set_item_status(item_id, update.status)
    if not result.success:
        return JSONResponse(status_code=status_for_code(result.error_code),
                            content=jsonable_encoder(result_response(result)))
    return result_response(result)


@app.put("/items/status", response_model=BatchStatusResponse)
def update_items_status(update: BatchItemStatusUpdate, store: OrderStore = Depends(get_order_store),
                        current_user: models.User = Depends(get_current_user)):
    require_status_permission(current_user, update.status)

    seen, requested_ids, allowed_ids, denied = set(), [], [], {}
    for item_id in update.item_ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        requested_ids.append(item_id)
        if update.status != ItemStatus.SERVED:
            try:
                kitchen_id = store.item_kitchen(item_id)
            except NotFoundError:
                # хранилище само вернет NOT_FOUND для этой позиции
                kitchen_id = None
            if kitchen_id is not None and not has_kitchen_access(current_user, kitchen_id):
                denied[item_id] = ItemStatusResult(item_id=item_id, success=False,
                                                   error_code=AccessDeniedError.error_code,
                                                   message=f"No access to kitchen {kitchen_id}")
                continue
        allowed_ids.append(item_id)

    batch = store.set_items_status_batch(allowed_ids, update.status)
    # результаты в порядке запроса, каждая позиция один раз
    processed = {result.item_id: result for result in batch.results}
    batch.results = [denied.get(item_id) or processed[item_id] for item_id in requested_ids]
    return batch_response(batch)


@app.put("/items/{item_id}/priority", response_model=OrderItemResponse)
def update_item_priority(item_id: int, update: ItemPriorityUpdate, store: OrderStore = Depends(get_order_store),
                         current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "captain")
    item = store.set_item_priority(item_id, update.priority)
    return item_response(snapshot_item(item))


# ========== Менеджер ==========

@app.get("/dashboard/stats", response_model=DashboardStats)
def get_dashboard_stats(store: OrderStore = Depends(get_order_store),
                        current_user: models.User = Depends(get_current_user)):
    require_dashboard(current_user, "dashboard")
    return DashboardStats(**store.dashboard_stats())


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
