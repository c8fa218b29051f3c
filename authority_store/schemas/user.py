from marshmallow import Schema, fields, pre_load, validates, ValidationError

from authority_store.user_store import normalize_email


class UserCreateSchema(Schema):
    name = fields.String(allow_none=True)
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = normalize_email(data["email"])
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 6:
            raise ValidationError("Password must be at least 6 characters long.")


class UserLoginSchema(Schema):
    email = fields.String()
    password = fields.String()


class RefreshSchema(Schema):
    refresh_token = fields.String()


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    name = fields.String(allow_none=True)
    email = fields.String(allow_none=False)
    role = fields.Method("get_role")
    last_login = fields.DateTime(allow_none=True)
    created_at = fields.DateTime(allow_none=True)

    def get_role(self, obj):
        return obj.role_name
