from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, validator

from domain import ItemStatus, OrderStatus, Section, UserRole

ROLES = [role.value for role in UserRole]


class UserCreate(BaseModel):
    username: str
    password: str
    role: str
    email: Optional[str] = None
    kitchen_access: List[str] = []

    @validator("username")
    def validate_username(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Username cannot be empty")
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Username cannot exceed 50 characters")
        return v.strip()

    @validator("password")
    def validate_password(cls, v: str) -> str:
        if not v or len(v) == 0:
            raise ValueError("Password cannot be empty")
        if len(v) < 4:
            raise ValueError("Password must be at least 4 characters")
        return v

    @validator("role")
    def validate_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    role: str
    kitchen_access: List[str] = []
    is_active: bool = True
    last_login: Optional[datetime] = None


class UserLogin(BaseModel):
    username: str
    password: str


class PasswordChange(BaseModel):
    new_password: str

    @validator("new_password")
    def validate_new_password(cls, v: str) -> str:
        if not v or len(v) == 0:
            raise ValueError("Password cannot be empty")
        if len(v) < 4:
            raise ValueError("Password must be at least 4 characters")
        return v


class DashboardsResponse(BaseModel):
    dashboards: List[str]
    landing_route: str


class KitchenResponse(BaseModel):
    id: str
    name: str
    location: str
    is_active: bool


class KitchenSectionResponse(BaseModel):
    id: str
    name: str
    color: str
    kitchen_id: str
    printer_ip: Optional[str] = None


class MenuItemResponse(BaseModel):
    id: str
    name: str
    section: Section
    kitchen_id: str
    cooking_time: int
    price: float


class OrderItemCreate(BaseModel):
    menu_item_id: str
    quantity: int
    special_instructions: Optional[str] = None
    priority: Optional[int] = None

    @validator("quantity")
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than 0")
        if v > 100:
            raise ValueError("Quantity cannot exceed 100")
        return v

    @validator("priority")
    def validate_priority(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= 100:
            raise ValueError("Priority must be between 0 and 100")
        return v


class OrderCreate(BaseModel):
    table_number: int
    items: List[OrderItemCreate]
    customer_name: Optional[str] = None
    notes: Optional[str] = None

    @validator("table_number")
    def validate_table_number(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Table number must be at least 1")
        return v

    @validator("items")
    def validate_items(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: str
    menu_item_name: str
    section: str
    kitchen_id: str
    price: float
    quantity: int
    table_number: int
    status: ItemStatus
    priority: int
    order_time: datetime
    cooking_start_time: Optional[datetime] = None
    ready_time: Optional[datetime] = None
    served_time: Optional[datetime] = None
    special_instructions: Optional[str] = None


class OrderProgress(BaseModel):
    total: int
    pending: int
    cooking: int
    ready: int
    served: int
    elapsed_minutes: int
    delayed: bool


class OrderResponse(BaseModel):
    id: int
    table_number: int
    status: OrderStatus
    order_time: datetime
    total: float
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemResponse]
    progress: OrderProgress


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class KitchenTicketResponse(BaseModel):
    item: OrderItemResponse
    customer_name: Optional[str] = None
    elapsed_minutes: int
    urgency: str


class BatchSuggestionResponse(BaseModel):
    menu_item_id: str
    menu_item_name: str
    total_quantity: int
    order_ids: List[int]
    table_numbers: List[int]
    avg_wait_time: float
    can_batch: bool
    kitchen_id: str


class KitchenBoardResponse(BaseModel):
    generated_at: datetime
    refresh_interval_seconds: int
    tickets: List[KitchenTicketResponse]
    batch_suggestions: List[BatchSuggestionResponse]


class ItemStatusUpdate(BaseModel):
    status: ItemStatus


class BatchItemStatusUpdate(BaseModel):
    item_ids: List[int]
    status: ItemStatus

    @validator("item_ids")
    def validate_item_ids(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("At least one item id is required")
        return v


class ItemPriorityUpdate(BaseModel):
    priority: int

    @validator("priority")
    def validate_priority(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("Priority must be between 0 and 100")
        return v


class ItemStatusResultResponse(BaseModel):
    item_id: int
    success: bool
    status: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""


class BatchStatusResponse(BaseModel):
    status: str
    success: bool
    summary: str
    succeeded_ids: List[int]
    failed: List[ItemStatusResultResponse]
    results: List[ItemStatusResultResponse]


class DashboardStats(BaseModel):
    active_orders: int
    total_items: int
    pending_items: int
    cooking_items: int
    ready_items: int
    served_items: int


class KotLineResponse(BaseModel):
    item_id: int
    name: str
    quantity: int
    status: str
    special_instructions: Optional[str] = None


class KotResponse(BaseModel):
    order_id: int
    table_number: int
    section: Optional[str] = None
    printer_ip: Optional[str] = None
    printed_at: datetime
    customer_name: Optional[str] = None
    lines: List[KotLineResponse]
