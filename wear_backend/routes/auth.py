from flask import current_app, request
from flask_jwt_extended import jwt_required
from sqlalchemy import select

from ..auth import (
    check_password,
    clear_password_reset_state,
    consume_backup_code,
    generate_backup_codes,
    generate_token,
    generate_totp_secret,
    hash_password,
    hash_reset_token,
    issue_email_verification_code,
    issue_password_reset_token,
    require_active_user,
    validate_password,
    verify_totp,
)
from ..extensions import db
from ..helpers import (
    api_error,
    api_success,
    get_json_payload,
    is_valid_email,
    normalize_email,
    parse_bool,
    utcnow,
)
from ..mailer import send_password_reset_email, send_verification_email
from ..models import Address, User
from ..serializers import serialize_user
from ..validation import (
    merge_preferences,
    normalize_address_payload,
    validate_profile_fields,
    validation_error,
)

GENERIC_RESET_MESSAGE = "If an account exists for this email, a password reset link has been sent"


def dispatch_verification_code(user: User):
    otp = issue_email_verification_code(user)
    db.session.commit()
    sent, error_details = send_verification_email(user.email, otp)
    if not sent:
        current_app.logger.warning(
            "Verification code for %s not delivered: %s", user.email, error_details
        )
    return otp


def apply_profile_updates(user: User, updates):
    for attribute, value in updates.items():
        if attribute == "preferences":
            user.preferences = merge_preferences(user.preferences, value)
        else:
            setattr(user, attribute, value)


def register_auth_routes(app):
    @app.route("/api/auth/register", methods=["POST"])
    def register():
        payload = get_json_payload()
        email = normalize_email(payload.get("email"))
        password = str(payload.get("password") or "")

        errors = []
        if not is_valid_email(email):
            errors.append({"field": "email", "message": "Please enter a valid email"})
        password_error = validate_password(password)
        if password_error:
            errors.append({"field": "password", "message": password_error})
        profile = validate_profile_fields(payload, errors, partial=False)
        if errors:
            return validation_error(errors)

        if db.session.scalar(select(User.id).where(User.email == email)):
            return api_error("User with this email already exists")

        user = User(
            email=email,
            password=hash_password(password),
            first_name=profile["first_name"],
            last_name=profile["last_name"],
            phone=profile.get("phone"),
        )
        db.session.add(user)
        db.session.commit()
        current_app.logger.info("Registered new account %s", email)

        dispatch_verification_code(user)

        return api_success(
            {"user": serialize_user(user), "token": generate_token(user)},
            "User registered successfully",
            201,
        )

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        payload = get_json_payload()
        email = normalize_email(payload.get("email"))
        password = str(payload.get("password") or "")

        if not is_valid_email(email) or not password:
            return api_error("Email and password are required")

        user = db.session.scalar(select(User).where(User.email == email))
        if not user:
            return api_error("Invalid credentials", 401)

        if user.is_locked:
            # A wrong password while locked pushes the lock further out.
            if not check_password(password, user.password):
                user.register_failed_login()
                db.session.commit()
            return api_error(
                "Account is temporarily locked due to too many failed login attempts", 423
            )

        if not check_password(password, user.password):
            user.register_failed_login()
            db.session.commit()
            current_app.logger.warning(
                "Failed login for %s (%s attempts)", email, user.login_attempts
            )
            return api_error("Invalid credentials", 401)

        if not user.is_active:
            return api_error("Account is deactivated", 401)

        user.reset_login_attempts()
        user.last_login = utcnow()
        db.session.commit()

        return api_success(
            {"user": serialize_user(user), "token": generate_token(user)},
            "Login successful",
        )

    @app.route("/api/auth/me", methods=["GET"])
    @jwt_required()
    def get_me():
        user, error = require_active_user()
        if error:
            return error
        return api_success({"user": serialize_user(user, include_addresses=True)})

    @app.route("/api/auth/profile", methods=["PUT"])
    @jwt_required()
    def update_profile():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        errors = []
        updates = validate_profile_fields(payload, errors)
        if errors:
            return validation_error(errors)

        apply_profile_updates(user, updates)
        db.session.commit()
        return api_success({"user": serialize_user(user)}, "Profile updated successfully")

    @app.route("/api/auth/profile/update", methods=["PUT"])
    @jwt_required()
    def update_profile_with_addresses():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        errors = []
        updates = validate_profile_fields(payload, errors)

        address_values = None
        if "addresses" in payload:
            raw_addresses = payload.get("addresses")
            if not isinstance(raw_addresses, list):
                errors.append({"field": "addresses", "message": "Addresses must be an array"})
            else:
                address_values = []
                for entry in raw_addresses:
                    values, address_errors = normalize_address_payload(entry)
                    errors.extend(address_errors)
                    address_values.append(values)
        if errors:
            return validation_error(errors)

        apply_profile_updates(user, updates)
        if address_values is not None:
            user.addresses.clear()
            has_default = False
            for values in address_values:
                if values.get("is_default"):
                    if has_default:
                        values["is_default"] = False
                    has_default = True
                user.addresses.append(Address(**values))

        db.session.commit()
        return api_success(
            {"user": serialize_user(user, include_addresses=True)},
            "Profile updated successfully",
        )

    @app.route("/api/auth/change-password", methods=["PUT"])
    @jwt_required()
    def change_password():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        current_password = str(payload.get("currentPassword") or "")
        new_password = str(payload.get("newPassword") or "")

        if not current_password:
            return api_error("Current password is required")
        password_error = validate_password(new_password)
        if password_error:
            return api_error(f"New {password_error[0].lower()}{password_error[1:]}")

        if not check_password(current_password, user.password):
            return api_error(
                "Current password is incorrect. Please enter your current password correctly."
            )
        if check_password(new_password, user.password):
            return api_error(
                "New password cannot be the same as your current password. "
                "Please choose a different password."
            )

        user.password = hash_password(new_password)
        db.session.commit()
        return api_success(message="Password changed successfully")

    @app.route("/api/auth/forgot-password", methods=["POST"])
    def forgot_password():
        payload = get_json_payload()
        email = normalize_email(payload.get("email"))
        if not is_valid_email(email):
            return api_error("Please enter a valid email")

        data = None
        user = db.session.scalar(select(User).where(User.email == email))
        if user:
            raw_token = issue_password_reset_token(user)
            db.session.commit()
            sent, error_details = send_password_reset_email(email, raw_token)
            if not sent:
                current_app.logger.error(
                    "Password reset email delivery failed for %s: %s",
                    email,
                    error_details or "Unknown delivery error",
                )
            if current_app.config.get("EXPOSE_RESET_TOKENS"):
                data = {"resetToken": raw_token}

        return api_success(data, GENERIC_RESET_MESSAGE)

    @app.route("/api/auth/reset-password", methods=["POST"])
    def reset_password():
        payload = get_json_payload()
        token = str(payload.get("token") or "").strip()
        new_password = str(payload.get("password") or "")

        if not token:
            return api_error("Reset token is required")
        password_error = validate_password(new_password)
        if password_error:
            return api_error(password_error)

        user = db.session.scalar(
            select(User).where(User.password_reset_token == hash_reset_token(token))
        )
        if not user or not user.password_reset_expires or user.password_reset_expires < utcnow():
            return api_error("Invalid or expired reset token")

        user.password = hash_password(new_password)
        clear_password_reset_state(user)
        user.reset_login_attempts()
        db.session.commit()
        current_app.logger.info("Password reset for %s", user.email)
        return api_success(message="Password reset successful")

    @app.route("/api/auth/verify-email", methods=["POST"])
    def verify_email():
        payload = get_json_payload()
        email = normalize_email(payload.get("email"))
        code = str(payload.get("code") or payload.get("otp") or "").strip()

        if not email or not code:
            return api_error("Email and verification code are required")

        user = db.session.scalar(select(User).where(User.email == email))
        if not user:
            return api_error("Invalid or expired verification code")
        if user.is_email_verified:
            return api_success({"user": serialize_user(user)}, "Email already verified")

        expires_at = user.email_verification_expires
        if (
            not user.email_verification_token
            or not expires_at
            or expires_at < utcnow()
            or not check_password(code, user.email_verification_token)
        ):
            return api_error("Invalid or expired verification code")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        db.session.commit()
        return api_success({"user": serialize_user(user)}, "Email verified successfully")

    @app.route("/api/auth/resend-verification", methods=["POST"])
    def resend_verification():
        payload = get_json_payload()
        email = normalize_email(payload.get("email"))
        if not is_valid_email(email):
            return api_error("Please enter a valid email")

        user = db.session.scalar(select(User).where(User.email == email))
        if user and not user.is_email_verified:
            dispatch_verification_code(user)
        return api_success(
            message="If the account needs verification, a new code has been sent"
        )

    @app.route("/api/auth/2fa", methods=["PUT"])
    @jwt_required()
    def toggle_two_factor():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        enable = parse_bool(payload.get("enable"))
        password = str(payload.get("password") or "")
        if enable is None:
            return api_error("Enable must be a boolean value")
        if not password:
            return api_error("Password is required to enable/disable 2FA")
        if not check_password(password, user.password):
            return api_error(
                "Password is incorrect. Please enter your current password to enable/disable 2FA."
            )

        if enable:
            secret = generate_totp_secret()
            codes, hashed_codes = generate_backup_codes()
            user.two_factor_secret = secret
            user.two_factor_enabled = True
            user.backup_codes = hashed_codes
            db.session.commit()
            return api_success(
                {"secret": secret, "backupCodes": codes},
                "Two-factor authentication enabled",
            )

        user.two_factor_secret = None
        user.two_factor_enabled = False
        user.backup_codes = []
        db.session.commit()
        return api_success(message="Two-factor authentication disabled")

    @app.route("/api/auth/2fa/verify", methods=["POST"])
    @jwt_required()
    def verify_two_factor():
        user, error = require_active_user()
        if error:
            return error

        if not user.two_factor_enabled or not user.two_factor_secret:
            return api_error("Two-factor authentication is not enabled")

        payload = get_json_payload()
        code = str(payload.get("code") or "").strip()
        if verify_totp(user.two_factor_secret, code):
            return api_success(message="Two-factor authentication code verified")

        if consume_backup_code(user, code):
            db.session.commit()
            return api_success(
                {"backupCodesRemaining": len(user.backup_codes or [])},
                "Backup code accepted",
            )

        return api_error(
            "Invalid two-factor authentication code. "
            "Please enter the 6-digit code from your authenticator app."
        )

    @app.route("/api/auth/logout", methods=["POST"])
    @jwt_required()
    def logout():
        _user, error = require_active_user()
        if error:
            return error
        return api_success(message="Logged out successfully")

    @app.route("/api/auth/users/<int:user_id>/request-admin", methods=["PUT"])
    @app.route("/api/admin/users/<int:user_id>/request-admin", methods=["PUT"])
    @jwt_required()
    def request_admin_privileges(user_id: int):
        user, error = require_active_user()
        if error:
            return error

        if user.id != user_id:
            return api_error("You can only request admin privileges for yourself", 403)
        if not current_app.config.get("ALLOW_ADMIN_SELF_PROMOTION"):
            return api_error("Admin self-promotion is disabled", 403)

        user.is_admin = True
        db.session.commit()
        current_app.logger.warning("User %s promoted themselves to admin", user.email)
        return api_success({"user": serialize_user(user)}, "Admin privileges granted successfully")
