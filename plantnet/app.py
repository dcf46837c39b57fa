import os
from datetime import timedelta
from typing import Dict, Optional

from bson.errors import InvalidDocument
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    get_jwt_identity,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
)
from flask_pymongo import PyMongo
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .catalog import QUANTITY_DIRECTIONS, PlantCatalog
from .orders import OrderBook
from .payments import (
    PaymentBridge,
    PaymentProcessorError,
    StripePaymentProcessor,
    UnpricedPlantError,
)
from .serializers import (
    parse_object_id,
    serialize_document,
    serialize_insert_result,
    serialize_update_result,
    serialize_write_result,
)
from .users import ALLOWED_USER_ROLES, UserDirectory

load_dotenv()

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5174"
TOKEN_COOKIE_NAME = "token"
TOKEN_LIFETIME = timedelta(days=365)
RESERVED_TOKEN_CLAIMS = {"email", "sub", "exp", "iat", "nbf", "jti", "type", "fresh", "csrf"}


def parse_positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value > 0:
        return value
    return None


def create_app(test_config: Optional[Dict] = None, db=None, payment_processor=None) -> Flask:
    """Create and configure the Flask application.

    ``db`` and ``payment_processor`` replace the MongoDB handle and the Stripe
    client; when omitted they are built from the configuration.
    """
    app = Flask(__name__)

    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["APP_ENV"] = os.getenv("APP_ENV", "development").strip().lower()
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/plantBD"
    )
    app.config["JWT_SECRET_KEY"] = os.getenv(
        "JWT_SECRET_KEY", "change-me-in-production"
    )
    app.config["CORS_ALLOWED_ORIGINS"] = os.getenv(
        "CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS
    )
    app.config["STRIPE_SECRET_KEY"] = os.getenv("STRIPE_SECRET_KEY")
    app.config["STRIPE_API_BASE"] = os.getenv(
        "STRIPE_API_BASE", "https://api.stripe.com"
    )
    app.config["PAYMENT_CURRENCY"] = os.getenv("PAYMENT_CURRENCY", "usd")
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if test_config:
        app.config.update(test_config)

    is_production = app.config["APP_ENV"] == "production"
    app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
    app.config["JWT_ACCESS_COOKIE_NAME"] = TOKEN_COOKIE_NAME
    app.config["JWT_IDENTITY_CLAIM"] = "email"
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = TOKEN_LIFETIME
    app.config["JWT_SESSION_COOKIE"] = False
    app.config["JWT_COOKIE_CSRF_PROTECT"] = False
    app.config.setdefault("JWT_COOKIE_SECURE", is_production)
    app.config.setdefault("JWT_COOKIE_SAMESITE", "None" if is_production else "Strict")

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # --- Initialize extensions ---
    allowed_origins = [
        origin.strip()
        for origin in str(app.config["CORS_ALLOWED_ORIGINS"]).split(",")
        if origin.strip()
    ]
    CORS(app, supports_credentials=True, origins=allowed_origins or "*")

    jwt = JWTManager(app)

    if db is None:
        mongo = PyMongo(app)
        db = mongo.db

    if payment_processor is None:
        payment_processor = StripePaymentProcessor(
            app.config["STRIPE_SECRET_KEY"], api_base=app.config["STRIPE_API_BASE"]
        )

    catalog = PlantCatalog(db)
    orders = OrderBook(db)
    users = UserDirectory(db)
    payments = PaymentBridge(
        catalog, payment_processor, currency=app.config["PAYMENT_CURRENCY"]
    )
    app.extensions["plantnet"] = {
        "db": db,
        "catalog": catalog,
        "orders": orders,
        "users": users,
        "payments": payments,
    }

    # --- Auth responses ---

    def unauthorized_response():
        return jsonify({"message": "unauthorized access"}), 401

    @jwt.unauthorized_loader
    def handle_missing_token(reason):
        return unauthorized_response()

    @jwt.invalid_token_loader
    def handle_invalid_token(reason):
        app.logger.warning("Rejected invalid token: %s", reason)
        return unauthorized_response()

    @jwt.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return unauthorized_response()

    # --- Error handlers ---

    @app.errorhandler(PyMongoError)
    def handle_storage_error(exc):
        app.logger.error("Storage call failed: %s", exc)
        return jsonify({"message": "Storage unavailable."}), 503

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"message": "Not found."}), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(InvalidDocument)
    @app.errorhandler(OverflowError)
    def handle_unstorable_document(exc):
        app.logger.warning("Rejected document the store cannot encode: %s", exc)
        return jsonify({"message": f"Document cannot be stored: {exc}"}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error."}), 500

    # --- Helpers ---

    def read_json_object():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict) or not payload:
            return None, (
                jsonify({"message": "Request body must be a non-empty JSON object."}),
                400,
            )
        return payload, None

    def load_identifier(value, label: str):
        object_id = parse_object_id(value)
        if object_id is None:
            return None, (jsonify({"message": f"Invalid {label} identifier."}), 400)
        return object_id, None

    def require_admin_user():
        current_email = get_jwt_identity()
        current_user = users.find_by_email(current_email)
        if current_user and current_user.get("role") == "admin":
            return current_user, None

        app.logger.warning("Admin route refused for %s", current_email)
        return None, (jsonify({"message": "Only admin can action"}), 403)

    # --- ROUTES ---

    @app.route("/")
    def index():
        return "Hello from plantNet Server.."

    @app.route("/health")
    def health():
        status = {"status": "ok", "database": "connected"}
        try:
            db.list_collection_names()
        except PyMongoError as exc:
            app.logger.warning("Health check could not reach the store: %s", exc)
            status["database"] = "error"
        return jsonify(status)

    # Auth

    @app.route("/jwt", methods=["POST"])
    def issue_token():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        email = payload.get("email")
        if not isinstance(email, str) or not email.strip():
            return jsonify({"message": "Email is required."}), 400

        extra_claims = {
            key: value
            for key, value in payload.items()
            if key not in RESERVED_TOKEN_CLAIMS
        }
        token = create_access_token(identity=email, additional_claims=extra_claims)

        response = jsonify({"success": True})
        set_access_cookies(response, token)
        return response

    @app.route("/logout", methods=["GET"])
    def logout():
        try:
            response = jsonify({"success": True})
            unset_jwt_cookies(response)
            return response
        except Exception as exc:
            app.logger.exception("Logout failed")
            return jsonify({"message": str(exc)}), 500

    # Plants

    @app.route("/add-plant", methods=["POST"])
    def add_plant():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        result = catalog.add_plant(payload)
        return jsonify(serialize_insert_result(result))

    @app.route("/plants", methods=["GET"])
    def list_plants():
        return jsonify([serialize_document(plant) for plant in catalog.list_plants()])

    @app.route("/plant/<plant_id>", methods=["GET"])
    def get_plant(plant_id: str):
        object_id, id_error = load_identifier(plant_id, "plant")
        if id_error:
            return id_error

        return jsonify(serialize_document(catalog.get_plant(object_id)))

    @app.route("/update_plant_quantity/<plant_id>", methods=["PATCH"])
    def update_plant_quantity(plant_id: str):
        object_id, id_error = load_identifier(plant_id, "plant")
        if id_error:
            return id_error

        payload, body_error = read_json_object()
        if body_error:
            return body_error

        amount = parse_positive_int(payload.get("updateQuantity"))
        direction = str(payload.get("status", "")).strip().lower()
        if amount is None:
            return jsonify({"message": "updateQuantity must be a positive integer."}), 400
        if direction not in QUANTITY_DIRECTIONS:
            return jsonify({"message": "status must be 'increase' or 'decrease'."}), 400

        result = catalog.adjust_quantity(object_id, amount, direction)
        return jsonify(serialize_update_result(result))

    # Payments

    @app.route("/create-payment-intent", methods=["POST"])
    def create_payment_intent():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        quantity = parse_positive_int(payload.get("quantity"))
        if quantity is None:
            return jsonify({"message": "quantity must be a positive integer."}), 400

        object_id, id_error = load_identifier(payload.get("plantId"), "plant")
        if id_error:
            return id_error

        try:
            intent = payments.create_payment_intent(object_id, quantity)
        except UnpricedPlantError as exc:
            app.logger.warning("Payment intent refused: %s", exc)
            return jsonify({"message": "Plant has no valid price."}), 422
        except ValueError as exc:
            return jsonify({"message": str(exc)}), 500
        except PaymentProcessorError as exc:
            return jsonify({"message": str(exc)}), 502

        if intent is None:
            return jsonify({"message": "Plant not found!"}), 404
        return jsonify(intent)

    # Orders

    @app.route("/orders", methods=["POST"])
    def create_order():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        result = orders.create_order(payload)
        return jsonify(serialize_insert_result(result))

    @app.route("/customer/orders/<email>", methods=["GET"])
    def list_customer_orders(email: str):
        return jsonify(
            [serialize_document(order) for order in orders.list_by_customer_email(email)]
        )

    @app.route("/orders/seller/<email>", methods=["GET"])
    def list_seller_orders(email: str):
        return jsonify(
            [serialize_document(order) for order in orders.list_by_seller_email(email)]
        )

    @app.route("/orders/status/<order_id>", methods=["PATCH"])
    def update_order_status(order_id: str):
        object_id, id_error = load_identifier(order_id, "order")
        if id_error:
            return id_error

        payload, body_error = read_json_object()
        if body_error:
            return body_error

        status = payload.get("status")
        if not isinstance(status, str) or not status.strip():
            return jsonify({"message": "status is required."}), 400

        result = orders.update_status(object_id, status)
        return jsonify(serialize_update_result(result))

    @app.route("/orders/status/cancle/<order_id>", methods=["PATCH"])
    def cancel_order(order_id: str):
        object_id, id_error = load_identifier(order_id, "order")
        if id_error:
            return id_error

        result = orders.cancel_order(object_id)
        if result.upserted_id is not None:
            app.logger.warning("Cancelling unknown order %s created a new document", order_id)
        return jsonify(serialize_update_result(result))

    # Users

    @app.route("/user", methods=["POST"])
    def save_user():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        email = payload.get("email")
        if not isinstance(email, str) or not email.strip():
            return jsonify({"message": "Email is required."}), 400

        result = users.upsert_on_login(email, payload)
        return jsonify(serialize_write_result(result))

    @app.route("/user-role/<email>", methods=["GET"])
    def get_user_role(email: str):
        role = users.get_role(email)
        if role is None:
            return jsonify({"message": "user not found!"}), 404
        return jsonify({"role": role})

    @app.route("/user/role/update/<email>", methods=["PATCH"])
    @jwt_required()
    def update_user_role(email: str):
        admin_user, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        payload, body_error = read_json_object()
        if body_error:
            return body_error

        desired_role = str(payload.get("role", "")).strip().lower()
        if desired_role not in ALLOWED_USER_ROLES:
            return (
                jsonify({"message": "Role must be 'customer', 'seller', or 'admin'."}),
                400,
            )

        result = users.update_role(email, desired_role)
        app.logger.info(
            "%s set role of %s to %s", admin_user.get("email"), email, desired_role
        )
        return jsonify(serialize_update_result(result))

    @app.route("/user/become-seller/<email>", methods=["PATCH"])
    @jwt_required()
    def become_seller(email: str):
        result = users.request_seller(email)
        return jsonify({"result": serialize_update_result(result)})

    # Admin

    @app.route("/admin-state", methods=["GET"])
    @jwt_required()
    def admin_state():
        _, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        return jsonify(orders.revenue_by_day())

    @app.route("/manage_user", methods=["GET"])
    @jwt_required()
    def manage_users():
        _, admin_error = require_admin_user()
        if admin_error:
            return admin_error

        caller_email = get_jwt_identity()
        return jsonify(
            [serialize_document(user) for user in users.list_other_users(caller_email)]
        )

    return app
