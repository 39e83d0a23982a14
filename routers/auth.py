from fastapi import APIRouter, Depends
from models.user import UserCreate, UserLogin, User
from utils.errors import AuthenticationError, ConflictError, ValidationError
from utils.jwt import create_user_token
from utils.repository import UserRepository, get_user_repository
from utils.response import api_response
from utils.security import get_password_hash, verify_password
import logging
from utils.logging_config import mask_email

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("api.auth")


@router.post("/signup")
def signup(user: UserCreate, users: UserRepository = Depends(get_user_repository)):
	if not user.name.strip() or not user.password.strip():
		raise ValidationError("Name, email, and password are required.")
	if users.get_by_email(user.email) is not None:
		logger.warning("signup_attempt_existing_email", extra={"email": mask_email(user.email)})
		raise ConflictError("User with this email already exists.")
	record = users.create(user.name.strip(), user.email, get_password_hash(user.password))
	logger.info("user_registered", extra={"user_id": record.id, "email": mask_email(record.email)})
	return api_response(
		data=User(id=record.id, name=record.name, email=record.email).model_dump(),
		message="User registered successfully.",
		status_code=201,
	)


@router.post("/login")
def login(user: UserLogin, users: UserRepository = Depends(get_user_repository)):
	record = users.get_by_email(user.email)
	if not record or not verify_password(user.password, record.password_hash):
		logger.warning("login_failed", extra={"email": mask_email(user.email)})
		raise AuthenticationError("Invalid credentials")
	token = create_user_token(record.id, record.email)
	logger.info("login_success", extra={"user_id": record.id, "email": mask_email(record.email)})
	return api_response(
		data={
			"access_token": token,
			"token_type": "bearer",
			"user": User(id=record.id, name=record.name, email=record.email).model_dump(),
		},
		message="Login successful",
		status_code=200)
