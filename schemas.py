"""
Database Schemas for the Novel Publishing Platform

Record models describe what is stored in each MongoDB collection; the *In
models describe request bodies. Chapter bodies keep their whitespace, since
indentation in chapter text is part of the writing.
"""
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class RequestModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# Records

class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique, lowercased login email")
    password: str = Field(..., description="bcrypt hash, never the plaintext")
    image: Optional[str] = Field(None, description="Profile image URL")


class Novel(BaseModel):
    title: str = Field(..., description="Novel title")
    description: str = Field(..., description="Short synopsis")
    cover_image: Optional[str] = Field(None, description="Cover image URL")
    author: Any = Field(..., description="ObjectId of the owning user")
    genres: List[str] = Field(default_factory=list, description="Genre tags")
    views: int = Field(0, ge=0, description="Detail page reads")


class Chapter(BaseModel):
    title: str = Field(..., description="Chapter title")
    content: str = Field(..., description="Chapter body text")
    novel_id: Any = Field(..., description="ObjectId of the parent novel")
    chapter_number: int = Field(..., ge=1, description="Position within the novel")
    images: List[str] = Field(default_factory=list, description="Image URLs in display order")


class PaymentProfile(BaseModel):
    user_id: Any = Field(..., description="ObjectId of the owning user")
    payment_type: Literal["upi", "paypal"]
    upi_id: Optional[str] = None
    upi_qr_image: Optional[str] = None
    paypal_email: Optional[str] = None
    paypal_username: Optional[str] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_method_fields(self) -> "PaymentProfile":
        if self.payment_type == "upi" and not self.upi_id:
            raise ValueError("UPI ID is required for UPI payment type")
        if self.payment_type == "paypal" and not self.paypal_email:
            raise ValueError("PayPal email is required for PayPal payment type")
        return self


# Request bodies

class RegisterIn(BaseModel):
    name: str = Field("", description="Display name")
    email: str = Field("", description="Login email")
    password: str = Field("", description="Plaintext password, at least 6 characters")


class LoginIn(BaseModel):
    email: str
    password: str


class NovelIn(RequestModel):
    title: str = ""
    description: str = ""
    cover_image: Optional[str] = None
    genres: List[str] = Field(default_factory=list)


class NovelUpdateIn(RequestModel):
    title: str = ""
    description: str = ""
    cover_image: Optional[str] = None
    genres: Optional[List[str]] = None


class ChapterIn(BaseModel):
    title: str = ""
    content: str = ""
    chapter_number: int = Field(..., description="Positive chapter number")
    images: List[str] = Field(default_factory=list)


class ChapterUpdateIn(BaseModel):
    title: str = ""
    content: str = ""
    chapter_number: int = Field(..., description="Positive chapter number")
    keep_images: List[str] = Field(default_factory=list, description="Stored images to retain, in order")
    new_images: List[str] = Field(default_factory=list, description="Freshly uploaded image URLs")


class UpiIn(RequestModel):
    upi_id: str = ""
    upi_qr_image: Optional[str] = None


class PaypalIn(RequestModel):
    paypal_email: str = ""
    paypal_username: Optional[str] = None


class PaymentIn(RequestModel):
    payment_type: Literal["upi", "paypal"]
    upi_id: Optional[str] = None
    upi_qr_image: Optional[str] = None
    paypal_email: Optional[str] = None
    paypal_username: Optional[str] = None
