# schemas.py

from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, EmailStr

# ------------------------------------------------------------
# Users
# ------------------------------------------------------------


class UserUpsert(BaseModel):
    """
    Profile payload sent after Firebase sign-in / registration.
    email, uid and name always come from the verified token, never from here.
    """
    username: Optional[str] = Field(default=None, max_length=80)
    email: Optional[EmailStr] = None
    photoURL: Optional[str] = None
    role: Optional[str] = None


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=80)
    photoURL: Optional[str] = None


class RoleUpdate(BaseModel):
    role: Literal["admin", "seller", "user"]

# ------------------------------------------------------------
# Categories
# ------------------------------------------------------------


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    categoryName: str = Field(..., min_length=1, max_length=80)
    categoryImage: Optional[str] = None


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    categoryName: Optional[str] = Field(default=None, min_length=1, max_length=80)
    categoryImage: Optional[str] = None

# ------------------------------------------------------------
# Medicines
# ------------------------------------------------------------


class MedicineIn(BaseModel):
    itemName: str = Field(..., min_length=1, max_length=120)
    genericName: str = ""
    shortDescription: str = Field(default="", max_length=1000)
    imageUrl: str = ""
    category: str = Field(..., min_length=1)
    company: str = ""
    massUnit: str = ""
    perUnitPrice: float = Field(..., ge=0)
    discountPercentage: float = Field(default=0, ge=0, le=100)
    stock: Optional[int] = Field(default=None, ge=0)


class MedicineUpdate(BaseModel):
    itemName: Optional[str] = Field(default=None, min_length=1, max_length=120)
    genericName: Optional[str] = None
    shortDescription: Optional[str] = Field(default=None, max_length=1000)
    imageUrl: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)
    company: Optional[str] = None
    massUnit: Optional[str] = None
    perUnitPrice: Optional[float] = Field(default=None, ge=0)
    discountPercentage: Optional[float] = Field(default=None, ge=0, le=100)
    stock: Optional[int] = Field(default=None, ge=0)

# ------------------------------------------------------------
# Cart
# ------------------------------------------------------------


class CartAddIn(BaseModel):
    # the storefront also posts item name/prices; those are re-read from the medicine
    medicineId: str
    quantity: int = Field(default=1, ge=1, le=999)


class CartQuantityIn(BaseModel):
    quantity: int = Field(..., ge=1, le=999)

# ------------------------------------------------------------
# Payments / Orders
# ------------------------------------------------------------


class SaveOrderIn(BaseModel):
    paymentIntentId: str = Field(..., min_length=1)
    transactionId: Optional[str] = None
    paymentMethod: str = "stripe"
    userName: Optional[str] = None


class PaymentStatusIn(BaseModel):
    status: Literal["paid", "cancelled"] = "paid"

# ------------------------------------------------------------
# Advertisements
# ------------------------------------------------------------


class AdvertisementIn(BaseModel):
    medicineId: str
    description: str = Field(..., min_length=1, max_length=500)
    medicineName: Optional[str] = None
    medicineImage: Optional[str] = None


class AdvertisementToggle(BaseModel):
    action: Literal["approve", "reject", "activate", "deactivate"]
    priority: Optional[int] = Field(default=None, ge=0)
