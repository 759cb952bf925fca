import logging
import os
from datetime import timedelta
from functools import wraps

import click
from flask import Flask, request, session, jsonify, g
from flask_bcrypt import Bcrypt
from pydantic import ValidationError
from sqlalchemy import func, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from categories import (
    all_conditions,
    bmi_display,
    bmi_range,
    body_fat_display,
    body_fat_ranges,
    condition_key,
    condition_label,
)
from database import SessionLocal
from models import User, Program, Rule, Exercise, Consultation, init_db, utcnow
from rule_engine import (
    BMI_ONLY_PROGRAMS,
    DEFAULT_PROGRAM,
    Full,
    InvalidInput,
    InvalidRuleTable,
    RuleTable,
    assess,
    calc_bmi,
    is_fallback,
    resolve,
)
from schemas import (
    ConsultationIn,
    ConsultationUpdate,
    ExerciseCreate,
    ExerciseUpdate,
    LoginIn,
    PasswordReset,
    ProgramCreate,
    ProgramUpdate,
    RegisterIn,
    ResolvePreviewIn,
    RuleBulkIn,
    RuleCreate,
    RuleUpdate,
    UserUpdate,
    EXERCISE_CATEGORIES,
    DIFFICULTIES,
    validation_errors,
)
from seed import rule_description, seed_admin, seed_catalog, seed_exercises

logging.basicConfig(
    level=os.environ.get("FITRULE_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(__name__)
app.secret_key = os.environ.get("FITRULE_SECRET_KEY", "supersecretkey")  # change in real app
app.config["BCRYPT_LOG_ROUNDS"] = int(os.environ.get("FITRULE_BCRYPT_ROUNDS", "12"))
bcrypt = Bcrypt(app)

# Initialize DB
init_db()


# ---------------------------------------------------------
# Response helpers
# ---------------------------------------------------------
def ok(data=None, message=None, status=200):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def fail(message, status=400, errors=None):
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def parse(schema):
    """Validate the JSON body against a pydantic schema."""
    payload = request.get_json(silent=True)
    return schema.model_validate(payload if payload is not None else {})


def page_args(default_limit=10):
    try:
        page = max(int(request.args.get("page", 1)), 1)
        limit = min(max(int(request.args.get("limit", default_limit)), 1), 100)
    except ValueError:
        page, limit = 1, default_limit
    return page, limit


def paginated(query, page, limit, serialize):
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serialize(r) for r in rows],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def flag_arg(name):
    """'true' / 'false' query flag; None when absent."""
    value = request.args.get(name)
    if value is None or value == "all":
        return None
    return value.lower() == "true"


@app.errorhandler(ValidationError)
def handle_validation_error(exc):
    return fail("Validation error", 400, validation_errors(exc))


@app.errorhandler(InvalidInput)
@app.errorhandler(InvalidRuleTable)
def handle_invalid_input(exc):
    return fail(str(exc), 400)


@app.errorhandler(404)
def handle_not_found(exc):
    return fail("Not found", 404)


@app.errorhandler(405)
def handle_method_not_allowed(exc):
    return fail("Method not allowed", 405)


# ---------------------------------------------------------
# Helper function: Get currently logged-in user
# ---------------------------------------------------------
def get_current_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    db = SessionLocal()
    user = db.query(User).filter_by(id=user_id).first()
    db.close()
    if user and not user.is_active:
        return None
    return user


def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return fail("Login required.", 401)
        g.user = user
        return f(*args, **kwargs)

    return wrapper


# -------------------------------------------------------------------
# Admin helpers
# -------------------------------------------------------------------
def admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return fail("Login required.", 401)
        if not user.is_admin:
            return fail("Admin access only.", 403)
        g.user = user
        return f(*args, **kwargs)

    return wrapper


def load_rule_table(db):
    """Active rules as an immutable RuleTable plus a pair -> Rule index."""
    rules = (
        db.query(Rule)
        .join(Program, Rule.program_id == Program.id)
        .filter(Rule.is_active.is_(True))
        .all()
    )
    table = RuleTable((r.bmi_category, r.body_fat_category, r.program.code) for r in rules)
    index = {(r.bmi_category, r.body_fat_category): r for r in rules}
    return table, index


# ---------------------------------------------------------
# Auth
# ---------------------------------------------------------
@app.route("/api/auth/register", methods=["POST"])
def register():
    data = parse(RegisterIn)
    hashed = bcrypt.generate_password_hash(data.password).decode("utf-8")

    db = SessionLocal()
    new_user = User(
        name=data.name,
        email=data.email,
        password_hash=hashed,
        gender=data.gender.value,
        role="user",
    )
    db.add(new_user)
    try:
        db.commit()
        app.logger.info("Registered user %s", new_user.email)
        return ok(new_user.to_dict(), "Registration successful. Please login.", 201)
    except IntegrityError:
        db.rollback()
        return fail("Email already exists.", 400)
    finally:
        db.close()


@app.route("/api/auth/login", methods=["POST"])
def login():
    data = parse(LoginIn)

    db = SessionLocal()
    user = db.query(User).filter_by(email=data.email).first()
    db.close()

    if not user or not bcrypt.check_password_hash(user.password_hash, data.password):
        return fail("Invalid credentials.", 401)
    if not user.is_active:
        return fail("Account is deactivated.", 403)

    session["user_id"] = user.id
    app.logger.info("User %s logged in", user.email)
    return ok(user.to_dict(), "Logged in successfully.")


@app.route("/api/auth/logout", methods=["POST"])
def logout():
    session.pop("user_id", None)
    return ok(message="Logged out.")


@app.route("/api/auth/me")
@login_required
def me():
    return ok(g.user.to_dict())


# ---------------------------------------------------------
# Consultations
# ---------------------------------------------------------
@app.route("/api/consultations", methods=["POST"])
@login_required
def create_consultation():
    data = parse(ConsultationIn)
    user = g.user

    condition = assess(data.weight, data.height, user.gender, data.body_fat_percentage)
    bmi = round(calc_bmi(data.weight, data.height), 2)

    db = SessionLocal()
    try:
        # BMI-only consultations never consult the rule table
        table, rules_by_pair = None, {}
        if isinstance(condition, Full):
            try:
                table, rules_by_pair = load_rule_table(db)
            except InvalidRuleTable:
                app.logger.exception("Active rules do not form a valid rule table")
                return fail("Rule configuration is invalid.", 500)

        code = resolve(condition, table)
        program = db.query(Program).filter_by(code=code).first()
        if not program:
            app.logger.error("Resolved program %s is missing from the catalog", code)
            return fail(f"Program {code} is not available.", 500)

        fallback = is_fallback(condition, table)
        rule = None
        body_fat_category = None
        if isinstance(condition, Full):
            body_fat_category = condition.body_fat.value
            rule = rules_by_pair.get((condition.bmi.value, body_fat_category))

        consultation = Consultation(
            user_id=user.id,
            program_id=program.id,
            rule_id=rule.id if rule else None,
            weight=data.weight,
            height=data.height,
            body_fat_percentage=data.body_fat_percentage,
            bmi=bmi,
            bmi_category=condition.bmi.value,
            body_fat_category=body_fat_category,
            is_default=fallback,
            notes=data.notes,
        )
        db.add(consultation)
        db.commit()

        if fallback:
            app.logger.warning(
                "No rule for %s-%s, user %s got default program %s",
                condition.bmi.value, body_fat_category, user.id, code,
            )
        app.logger.info("Consultation %s for user %s -> %s", consultation.id, user.id, code)
        return ok(consultation.to_dict(), "Consultation created successfully", 201)
    finally:
        db.close()


@app.route("/api/consultations")
@login_required
def list_consultations():
    page, limit = page_args()
    status = request.args.get("status")

    db = SessionLocal()
    try:
        query = db.query(Consultation).filter_by(user_id=g.user.id)
        if status:
            query = query.filter_by(status=status)
        query = query.order_by(Consultation.created_at.desc(), Consultation.id.desc())
        return ok(paginated(query, page, limit, Consultation.to_dict))
    finally:
        db.close()


@app.route("/api/consultations/<int:consultation_id>")
@login_required
def get_consultation(consultation_id):
    db = SessionLocal()
    try:
        consultation = (
            db.query(Consultation).filter_by(id=consultation_id, user_id=g.user.id).first()
        )
        if not consultation:
            return fail("Consultation not found", 404)
        return ok(consultation.to_dict())
    finally:
        db.close()


@app.route("/api/consultations/<int:consultation_id>", methods=["PUT"])
@login_required
def update_consultation(consultation_id):
    data = parse(ConsultationUpdate)

    db = SessionLocal()
    try:
        consultation = (
            db.query(Consultation).filter_by(id=consultation_id, user_id=g.user.id).first()
        )
        if not consultation:
            return fail("Consultation not found", 404)

        if data.status:
            consultation.status = data.status
        if "notes" in data.model_fields_set:
            consultation.notes = data.notes
        db.commit()
        return ok(consultation.to_dict(), "Consultation updated successfully")
    finally:
        db.close()


@app.route("/api/consultations/<int:consultation_id>", methods=["DELETE"])
@login_required
def delete_consultation(consultation_id):
    db = SessionLocal()
    try:
        consultation = (
            db.query(Consultation).filter_by(id=consultation_id, user_id=g.user.id).first()
        )
        if not consultation:
            return fail("Consultation not found", 404)
        db.delete(consultation)
        db.commit()
        return ok(message="Consultation deleted successfully")
    finally:
        db.close()


@app.route("/api/consultations/admin")
@admin_required
def admin_consultations():
    page, limit = page_args()
    status = request.args.get("status")
    search = request.args.get("search")

    db = SessionLocal()
    try:
        query = db.query(Consultation).join(User, Consultation.user_id == User.id)
        if status:
            query = query.filter(Consultation.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        query = query.order_by(Consultation.created_at.desc(), Consultation.id.desc())
        return ok(paginated(query, page, limit, Consultation.to_dict))
    finally:
        db.close()


@app.route("/api/consultations/stats")
@admin_required
def consultation_stats():
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    db = SessionLocal()
    try:
        total = db.query(Consultation).count()
        today_count = db.query(Consultation).filter(Consultation.created_at >= today).count()
        active_users = (
            db.query(func.count(func.distinct(Consultation.user_id)))
            .filter(Consultation.created_at >= now - timedelta(days=30))
            .scalar()
        )
        rows = (
            db.query(Program.code, Program.name, func.count(Consultation.id))
            .join(Consultation, Consultation.program_id == Program.id)
            .group_by(Program.id)
            .order_by(func.count(Consultation.id).desc(), Program.code)
            .all()
        )
    finally:
        db.close()

    return ok({
        "total": total,
        "today": today_count,
        "active_users": active_users,
        "program_stats": [
            {"program": {"code": code, "name": name}, "count": count}
            for code, name, count in rows
        ],
    })


# ---------------------------------------------------------
# Programs
# ---------------------------------------------------------
def _program_in_use(db, program):
    """Why `program` must stay active, or None."""
    if program.code == DEFAULT_PROGRAM:
        return "it is the default program"
    if program.code in BMI_ONLY_PROGRAMS.values():
        return "it serves BMI-only consultations"
    count = db.query(Rule).filter_by(program_id=program.id, is_active=True).count()
    if count:
        return f"used by {count} active rule(s)"
    return None


@app.route("/api/programs")
@login_required
def list_programs():
    search = request.args.get("search")
    category = request.args.get("category")
    active = flag_arg("active")

    db = SessionLocal()
    try:
        query = db.query(Program)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Program.name.ilike(pattern),
                    Program.code.ilike(pattern),
                    Program.description.ilike(pattern),
                )
            )
        if category:
            query = query.filter(Program.bmi_category == category)
        if "active" not in request.args or not g.user.is_admin:
            query = query.filter(Program.is_active.is_(True))
        elif active is not None:
            query = query.filter(Program.is_active.is_(active))

        programs = sorted(query.all(), key=lambda p: (len(p.code), p.code))
        return ok([p.to_dict(with_rules=True) for p in programs])
    finally:
        db.close()


@app.route("/api/programs/<code>")
@login_required
def get_program_by_code(code):
    db = SessionLocal()
    try:
        program = (
            db.query(Program).filter_by(code=code.upper()).filter(Program.is_active.is_(True)).first()
        )
        if not program:
            return fail("Program not found", 404)
        return ok(program.to_dict(with_rules=True))
    finally:
        db.close()


@app.route("/api/programs/id/<int:program_id>")
@login_required
def get_program_by_id(program_id):
    db = SessionLocal()
    try:
        program = db.get(Program, program_id)
        if not program:
            return fail("Program not found", 404)
        return ok(program.to_dict(with_rules=True))
    finally:
        db.close()


@app.route("/api/programs", methods=["POST"])
@admin_required
def create_program():
    data = parse(ProgramCreate)

    db = SessionLocal()
    try:
        if db.query(Program).filter_by(code=data.code).first():
            return fail("Program code already exists")
        taken = (
            db.query(Program)
            .filter_by(bmi_category=data.bmi_category.value, body_fat_category=data.body_fat_category.value)
            .first()
        )
        if taken:
            return fail("BMI and Body Fat category combination already exists")

        program = Program(**data.model_dump(mode="json"))
        db.add(program)
        db.commit()
        app.logger.info("Program %s created by admin %s", program.code, g.user.id)
        return ok(program.to_dict(), "Program created successfully", 201)
    finally:
        db.close()


@app.route("/api/programs/<int:program_id>", methods=["PUT"])
@admin_required
def update_program(program_id):
    data = parse(ProgramUpdate)

    db = SessionLocal()
    try:
        program = db.get(Program, program_id)
        if not program:
            return fail("Program not found", 404)

        if data.is_active is False and program.is_active:
            reason = _program_in_use(db, program)
            if reason:
                return fail(f"Cannot deactivate program {program.code}: {reason}")

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field in ("name", "schedule", "is_active", "cardio_ratio"):
                continue
            setattr(program, field, value)
        db.commit()
        app.logger.info("Program %s updated by admin %s", program.code, g.user.id)
        return ok(program.to_dict(), "Program updated successfully")
    finally:
        db.close()


@app.route("/api/programs/<int:program_id>", methods=["DELETE"])
@admin_required
def delete_program(program_id):
    db = SessionLocal()
    try:
        program = db.get(Program, program_id)
        if not program:
            return fail("Program not found", 404)

        rule_count = db.query(Rule).filter_by(program_id=program.id).count()
        if rule_count:
            return fail(f"Cannot delete program used by {rule_count} rule(s). Reassign the rules first.")
        consultation_count = db.query(Consultation).filter_by(program_id=program.id).count()
        if consultation_count:
            return fail(
                f"Cannot delete program with {consultation_count} consultation(s). "
                "Deactivate it instead."
            )

        code = program.code
        db.delete(program)
        db.commit()
        app.logger.info("Program %s deleted by admin %s", code, g.user.id)
        return ok(message="Program deleted successfully")
    finally:
        db.close()


@app.route("/api/programs/stats")
@admin_required
def program_stats():
    db = SessionLocal()
    try:
        total = db.query(Program).count()
        active = db.query(Program).filter(Program.is_active.is_(True)).count()
        bmi_rows = (
            db.query(Program.bmi_category, func.count(Program.id))
            .filter(Program.is_active.is_(True))
            .group_by(Program.bmi_category)
            .all()
        )
        body_fat_rows = (
            db.query(Program.body_fat_category, func.count(Program.id))
            .filter(Program.is_active.is_(True))
            .group_by(Program.body_fat_category)
            .all()
        )
    finally:
        db.close()

    return ok({
        "total": total,
        "active": active,
        "inactive": total - active,
        "bmi_distribution": [{"category": c, "count": n} for c, n in sorted(bmi_rows)],
        "body_fat_distribution": [{"category": c, "count": n} for c, n in sorted(body_fat_rows)],
    })


# ---------------------------------------------------------
# Rules
# ---------------------------------------------------------
DUPLICATE_PAIR = "Rule with this BMI and Body Fat combination already exists"


def _active_rule_for(db, bmi_category, body_fat_category, exclude_id=None):
    query = db.query(Rule).filter_by(
        bmi_category=bmi_category, body_fat_category=body_fat_category, is_active=True
    )
    if exclude_id is not None:
        query = query.filter(Rule.id != exclude_id)
    return query.first()


def _commit_rules(db):
    """Commit rule changes; False if the active-pair index rejected them."""
    try:
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        app.logger.warning("Rule change rejected: pair already has an active rule")
        return False


@app.route("/api/rules")
@admin_required
def list_rules():
    db = SessionLocal()
    try:
        query = db.query(Rule)
        for field in ("bmi_category", "body_fat_category"):
            value = request.args.get(field)
            if value:
                query = query.filter(getattr(Rule, field) == value)
        program_id = request.args.get("program_id", type=int)
        if program_id:
            query = query.filter(Rule.program_id == program_id)
        active = flag_arg("active")
        if active is not None:
            query = query.filter(Rule.is_active.is_(active))

        rules = query.order_by(Rule.bmi_category, Rule.body_fat_category, Rule.id).all()
        return ok([r.to_dict() for r in rules])
    finally:
        db.close()


@app.route("/api/rules/<int:rule_id>")
@admin_required
def get_rule(rule_id):
    db = SessionLocal()
    try:
        rule = db.get(Rule, rule_id)
        if not rule:
            return fail("Rule not found", 404)
        return ok(rule.to_dict())
    finally:
        db.close()


@app.route("/api/rules", methods=["POST"])
@admin_required
def create_rule():
    data = parse(RuleCreate)
    bmi, body_fat = data.bmi_category.value, data.body_fat_category.value

    db = SessionLocal()
    try:
        if data.is_active and _active_rule_for(db, bmi, body_fat):
            return fail(DUPLICATE_PAIR)
        program = db.get(Program, data.program_id)
        if not program:
            return fail("Program not found")
        if data.is_active and not program.is_active:
            return fail(f"Program {program.code} is inactive")

        rule = Rule(
            name=data.name or f"Rule for {program.name}",
            description=data.description or rule_description(bmi, body_fat, program.code),
            bmi_category=bmi,
            body_fat_category=body_fat,
            program_id=program.id,
            is_active=data.is_active,
        )
        db.add(rule)
        if not _commit_rules(db):
            return fail(DUPLICATE_PAIR)
        app.logger.info("Rule %s-%s -> %s created by admin %s", bmi, body_fat, program.code, g.user.id)
        return ok(rule.to_dict(), "Rule created successfully", 201)
    finally:
        db.close()


@app.route("/api/rules/<int:rule_id>", methods=["PUT"])
@admin_required
def update_rule(rule_id):
    data = parse(RuleUpdate)

    db = SessionLocal()
    try:
        rule = db.get(Rule, rule_id)
        if not rule:
            return fail("Rule not found", 404)
        program = db.get(Program, data.program_id)
        if not program:
            return fail("Program not found")
        if rule.is_active and not program.is_active:
            return fail(f"Program {program.code} is inactive")

        rule.program_id = program.id
        rule.program = program
        rule.description = rule_description(rule.bmi_category, rule.body_fat_category, program.code)
        db.commit()
        app.logger.info("Rule %s reassigned to %s by admin %s", rule.condition, program.code, g.user.id)
        return ok(rule.to_dict(), "Rule updated successfully")
    finally:
        db.close()


@app.route("/api/rules/<int:rule_id>", methods=["DELETE"])
@admin_required
def delete_rule(rule_id):
    db = SessionLocal()
    try:
        rule = db.get(Rule, rule_id)
        if not rule:
            return fail("Rule not found", 404)
        # keep consultation history, just drop the link
        db.query(Consultation).filter_by(rule_id=rule.id).update({"rule_id": None})
        db.delete(rule)
        db.commit()
        app.logger.info("Rule %s deleted by admin %s", rule_id, g.user.id)
        return ok(message="Rule deleted successfully")
    finally:
        db.close()


@app.route("/api/rules/<int:rule_id>/toggle", methods=["PATCH"])
@admin_required
def toggle_rule(rule_id):
    db = SessionLocal()
    try:
        rule = db.get(Rule, rule_id)
        if not rule:
            return fail("Rule not found", 404)

        new_status = not rule.is_active
        if new_status and _active_rule_for(db, rule.bmi_category, rule.body_fat_category, rule.id):
            return fail("Cannot activate: Another rule with this combination is already active")
        if new_status and not rule.program.is_active:
            return fail(f"Cannot activate: Program {rule.program.code} is inactive")

        rule.is_active = new_status
        if not _commit_rules(db):
            return fail("Cannot activate: Another rule with this combination is already active")
        return ok(rule.to_dict(), f"Rule {'activated' if new_status else 'deactivated'} successfully")
    finally:
        db.close()


@app.route("/api/rules/stats")
@admin_required
def rule_stats():
    db = SessionLocal()
    try:
        total = db.query(Rule).count()
        table, _ = load_rule_table(db)
        active = db.query(Rule).filter(Rule.is_active.is_(True)).count()
        bmi_rows = (
            db.query(Rule.bmi_category, func.count(Rule.id))
            .filter(Rule.is_active.is_(True))
            .group_by(Rule.bmi_category)
            .all()
        )
        body_fat_rows = (
            db.query(Rule.body_fat_category, func.count(Rule.id))
            .filter(Rule.is_active.is_(True))
            .group_by(Rule.body_fat_category)
            .all()
        )
    finally:
        db.close()

    max_combinations = len(all_conditions())
    return ok({
        "total": total,
        "active": active,
        "inactive": total - active,
        "coverage": f"{round(len(table) / max_combinations * 100)}%",
        "max_combinations": max_combinations,
        "bmi_distribution": [{"category": c, "count": n} for c, n in sorted(bmi_rows)],
        "body_fat_distribution": [{"category": c, "count": n} for c, n in sorted(body_fat_rows)],
    })


@app.route("/api/rules/missing-combinations")
@admin_required
def missing_combinations():
    db = SessionLocal()
    try:
        table, _ = load_rule_table(db)
    finally:
        db.close()

    missing = table.missing()
    return ok({
        "total": len(all_conditions()),
        "existing": len(table),
        "missing": len(missing),
        "missing_combinations": [
            {
                "combination": condition_key(bmi, body_fat),
                "condition_label": condition_label(bmi, body_fat),
                "bmi_category": bmi.value,
                "body_fat_category": body_fat.value,
                "bmi_display": bmi_display(bmi),
                "body_fat_display": body_fat_display(body_fat),
                "bmi_range": bmi_range(bmi),
                "body_fat_ranges": body_fat_ranges(body_fat),
            }
            for bmi, body_fat in missing
        ],
    })


@app.route("/api/rules/resolve", methods=["POST"])
@admin_required
def resolve_preview():
    data = parse(ResolvePreviewIn)
    condition = assess(data.weight, data.height, data.gender, data.body_fat_percentage)

    db = SessionLocal()
    try:
        table = load_rule_table(db)[0] if isinstance(condition, Full) else None
        code = resolve(condition, table)
        program = db.query(Program).filter_by(code=code).first()
        program_data = program.summary() if program else None
    finally:
        db.close()

    body_fat = condition.body_fat.value if isinstance(condition, Full) else None
    return ok({
        "input": data.model_dump(mode="json"),
        "calculated": {"bmi": round(calc_bmi(data.weight, data.height), 2)},
        "result": {
            "bmi_category": condition.bmi.value,
            "body_fat_category": body_fat,
            "bmi_display": bmi_display(condition.bmi),
            "body_fat_display": body_fat_display(body_fat),
            "mode": "complete" if body_fat else "bmi_only",
            "program": code,
            "program_detail": program_data,
            "is_default": is_fallback(condition, table),
        },
    })


@app.route("/api/rules/bulk", methods=["POST"])
@admin_required
def bulk_create_rules():
    data = parse(RuleBulkIn)

    db = SessionLocal()
    try:
        programs = {p.id: p for p in db.query(Program).all()}
        unknown = sorted({r.program_id for r in data.rules if r.program_id not in programs})
        if unknown:
            return fail(f"Program not found: {', '.join(str(i) for i in unknown)}")
        inactive = sorted({
            programs[r.program_id].code
            for r in data.rules
            if r.is_active and not programs[r.program_id].is_active
        })
        if inactive:
            return fail(f"Program inactive: {', '.join(inactive)}")

        # new active rules must fit alongside the current ones without duplicate pairs
        current, _ = load_rule_table(db)
        rows = [(bmi, body_fat, code) for (bmi, body_fat), code in current.items()]
        rows += [
            (r.bmi_category, r.body_fat_category, programs[r.program_id].code)
            for r in data.rules if r.is_active
        ]
        RuleTable(rows)

        created = []
        for item in data.rules:
            program = programs[item.program_id]
            bmi, body_fat = item.bmi_category.value, item.body_fat_category.value
            created.append(
                Rule(
                    name=item.name or f"Rule for {program.name}",
                    description=item.description or rule_description(bmi, body_fat, program.code),
                    bmi_category=bmi,
                    body_fat_category=body_fat,
                    program_id=program.id,
                    is_active=item.is_active,
                )
            )
        db.add_all(created)
        if not _commit_rules(db):
            return fail(DUPLICATE_PAIR)
        app.logger.info("%d rules bulk-created by admin %s", len(created), g.user.id)
        return ok([r.to_dict() for r in created], f"{len(created)} rules created successfully", 201)
    finally:
        db.close()


# ---------------------------------------------------------
# Exercises
# ---------------------------------------------------------
@app.route("/api/exercises")
@login_required
def list_exercises():
    page, limit = page_args(default_limit=20)
    search = request.args.get("search")
    category = request.args.get("category")
    difficulty = request.args.get("difficulty")

    db = SessionLocal()
    try:
        query = db.query(Exercise)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Exercise.name.ilike(pattern), Exercise.description.ilike(pattern)))
        if category:
            query = query.filter(Exercise.category == category)
        if difficulty:
            query = query.filter(Exercise.difficulty == difficulty)

        active = flag_arg("active")
        if "active" not in request.args or not g.user.is_admin:
            query = query.filter(Exercise.is_active.is_(True))
        elif active is not None:
            query = query.filter(Exercise.is_active.is_(active))

        query = query.order_by(Exercise.category, Exercise.name)
        return ok(paginated(query, page, limit, Exercise.to_dict))
    finally:
        db.close()


@app.route("/api/exercises/categories")
@login_required
def exercise_categories():
    db = SessionLocal()
    try:
        counts = dict(
            db.query(Exercise.category, func.count(Exercise.id))
            .filter(Exercise.is_active.is_(True))
            .group_by(Exercise.category)
            .all()
        )
    finally:
        db.close()
    return ok([{"category": c, "count": counts.get(c, 0)} for c in EXERCISE_CATEGORIES])


@app.route("/api/exercises/category/<category>")
@login_required
def exercises_by_category(category):
    if category not in EXERCISE_CATEGORIES:
        return fail("Invalid exercise category")
    db = SessionLocal()
    try:
        exercises = (
            db.query(Exercise)
            .filter_by(category=category)
            .filter(Exercise.is_active.is_(True))
            .order_by(Exercise.name)
            .all()
        )
        return ok([e.to_dict() for e in exercises])
    finally:
        db.close()


@app.route("/api/exercises/<int:exercise_id>")
@login_required
def get_exercise(exercise_id):
    db = SessionLocal()
    try:
        exercise = db.get(Exercise, exercise_id)
        if not exercise or (not exercise.is_active and not g.user.is_admin):
            return fail("Exercise not found", 404)
        return ok(exercise.to_dict())
    finally:
        db.close()


@app.route("/api/exercises", methods=["POST"])
@admin_required
def create_exercise():
    data = parse(ExerciseCreate)

    db = SessionLocal()
    try:
        if db.query(Exercise).filter(func.lower(Exercise.name) == data.name.lower()).first():
            return fail("Exercise with this name already exists")
        exercise = Exercise(**data.model_dump())
        db.add(exercise)
        db.commit()
        app.logger.info("Exercise %s created by admin %s", exercise.name, g.user.id)
        return ok(exercise.to_dict(), "Exercise created successfully", 201)
    finally:
        db.close()


@app.route("/api/exercises/<int:exercise_id>", methods=["PUT"])
@admin_required
def update_exercise(exercise_id):
    data = parse(ExerciseUpdate)

    db = SessionLocal()
    try:
        exercise = db.get(Exercise, exercise_id)
        if not exercise:
            return fail("Exercise not found", 404)

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"].lower() != exercise.name.lower():
            clash = db.query(Exercise).filter(
                func.lower(Exercise.name) == changes["name"].lower(), Exercise.id != exercise.id
            ).first()
            if clash:
                return fail("Exercise with this name already exists")

        for field, value in changes.items():
            if value is None and field in ("name", "category", "difficulty", "is_active",
                                           "muscle_groups", "equipment"):
                continue
            setattr(exercise, field, value)
        db.commit()
        return ok(exercise.to_dict(), "Exercise updated successfully")
    finally:
        db.close()


@app.route("/api/exercises/<int:exercise_id>", methods=["DELETE"])
@admin_required
def delete_exercise(exercise_id):
    db = SessionLocal()
    try:
        exercise = db.get(Exercise, exercise_id)
        if not exercise:
            return fail("Exercise not found", 404)
        db.delete(exercise)
        db.commit()
        app.logger.info("Exercise %s deleted by admin %s", exercise_id, g.user.id)
        return ok(message="Exercise deleted successfully")
    finally:
        db.close()


@app.route("/api/exercises/<int:exercise_id>/toggle", methods=["PATCH"])
@admin_required
def toggle_exercise(exercise_id):
    db = SessionLocal()
    try:
        exercise = db.get(Exercise, exercise_id)
        if not exercise:
            return fail("Exercise not found", 404)
        exercise.is_active = not exercise.is_active
        db.commit()
        state = "activated" if exercise.is_active else "deactivated"
        return ok(exercise.to_dict(), f"Exercise {state} successfully")
    finally:
        db.close()


@app.route("/api/exercises/stats")
@admin_required
def exercise_stats():
    db = SessionLocal()
    try:
        total = db.query(Exercise).count()
        active = db.query(Exercise).filter(Exercise.is_active.is_(True)).count()
        with_video = (
            db.query(Exercise)
            .filter(Exercise.youtube_url.isnot(None), Exercise.youtube_url != "")
            .count()
        )
        by_category = dict(
            db.query(Exercise.category, func.count(Exercise.id)).group_by(Exercise.category).all()
        )
        by_difficulty = dict(
            db.query(Exercise.difficulty, func.count(Exercise.id)).group_by(Exercise.difficulty).all()
        )
    finally:
        db.close()

    return ok({
        "total": total,
        "active": active,
        "inactive": total - active,
        "with_video": with_video,
        "by_category": [{"category": c, "count": by_category.get(c, 0)} for c in EXERCISE_CATEGORIES],
        "by_difficulty": [{"difficulty": d, "count": by_difficulty.get(d, 0)} for d in DIFFICULTIES],
    })


# ---------------------------------------------------------
# Users (admin)
# ---------------------------------------------------------
def _user_with_counts(db, user):
    data = user.to_dict()
    data["consultation_count"] = db.query(Consultation).filter_by(user_id=user.id).count()
    return data


@app.route("/api/users")
@admin_required
def list_users():
    page, limit = page_args()
    search = request.args.get("search")
    role = request.args.get("role")

    db = SessionLocal()
    try:
        query = db.query(User)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if role:
            query = query.filter(User.role == role)
        query = query.order_by(User.created_at.desc(), User.id.desc())
        return ok(paginated(query, page, limit, lambda u: _user_with_counts(db, u)))
    finally:
        db.close()


@app.route("/api/users/stats")
@admin_required
def user_stats():
    since = utcnow() - timedelta(days=30)

    db = SessionLocal()
    try:
        total = db.query(User).count()
        active = db.query(User).filter(User.is_active.is_(True)).count()
        admins = db.query(User).filter_by(role="admin").count()
        by_gender = dict(
            db.query(User.gender, func.count(User.id))
            .filter(User.is_active.is_(True))
            .group_by(User.gender)
            .all()
        )
        recent = db.query(User).filter(User.created_at >= since).count()
        with_consultations = (
            db.query(func.count(func.distinct(Consultation.user_id))).scalar() or 0
        )
    finally:
        db.close()

    return ok({
        "total": total,
        "active": active,
        "inactive": total - active,
        "admins": admins,
        "users": total - admins,
        "male": by_gender.get("male", 0),
        "female": by_gender.get("female", 0),
        "recent_registrations": recent,
        "users_with_consultations": with_consultations,
        "registration_rate": round(recent / total * 100) if total else 0,
    })


@app.route("/api/users/<int:user_id>")
@admin_required
def get_user(user_id):
    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if not user:
            return fail("User not found", 404)
        return ok(_user_with_counts(db, user))
    finally:
        db.close()


@app.route("/api/users/<int:user_id>", methods=["PUT"])
@admin_required
def update_user(user_id):
    data = parse(UserUpdate)
    changes = data.model_dump(exclude_unset=True, exclude_none=True, mode="json")

    if user_id == g.user.id:
        if changes.get("is_active") is False:
            return fail("You cannot deactivate your own account")
        if "role" in changes and changes["role"] != g.user.role:
            return fail("You cannot change your own role")

    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if not user:
            return fail("User not found", 404)

        if "email" in changes and changes["email"] != user.email:
            if db.query(User).filter(User.email == changes["email"], User.id != user.id).first():
                return fail("Email already exists")

        for field, value in changes.items():
            setattr(user, field, value)
        db.commit()
        app.logger.info("User %s updated by admin %s", user.id, g.user.id)
        return ok(user.to_dict(), "User updated successfully")
    finally:
        db.close()


@app.route("/api/users/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    if user_id == g.user.id:
        return fail("You cannot delete your own account")

    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if not user:
            return fail("User not found", 404)

        count = db.query(Consultation).filter_by(user_id=user.id).count()
        if count:
            return fail(
                f"Cannot delete user with {count} consultation(s). "
                "Please transfer or delete consultations first."
            )
        db.delete(user)
        db.commit()
        app.logger.info("User %s deleted by admin %s", user_id, g.user.id)
        return ok(message="User deleted successfully")
    finally:
        db.close()


@app.route("/api/users/<int:user_id>/toggle", methods=["PATCH"])
@admin_required
def toggle_user(user_id):
    if user_id == g.user.id:
        return fail("You cannot deactivate your own account")

    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if not user:
            return fail("User not found", 404)
        user.is_active = not user.is_active
        db.commit()
        state = "activated" if user.is_active else "deactivated"
        return ok(user.to_dict(), f"User {state} successfully")
    finally:
        db.close()


@app.route("/api/users/<int:user_id>/reset-password", methods=["POST"])
@admin_required
def reset_user_password(user_id):
    data = parse(PasswordReset)

    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if not user:
            return fail("User not found", 404)
        user.password_hash = bcrypt.generate_password_hash(data.new_password).decode("utf-8")
        db.commit()
        app.logger.info("Password of user %s reset by admin %s", user.id, g.user.id)
        return ok(message="Password reset successfully")
    finally:
        db.close()


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------
@app.route("/api/health")
def health():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        stats = {
            "users": db.query(User).count(),
            "programs": db.query(Program).count(),
            "exercises": db.query(Exercise).count(),
            "rules": db.query(Rule).count(),
            "consultations": db.query(Consultation).count(),
        }
    except SQLAlchemyError as exc:
        app.logger.exception("Health check failed")
        return jsonify({
            "status": "ERROR",
            "message": "Database connection failed",
            "timestamp": utcnow().isoformat(),
            "error": str(exc),
        }), 500
    finally:
        db.close()

    return jsonify({
        "status": "OK",
        "message": "Server is running",
        "database": "Connected",
        "timestamp": utcnow().isoformat(),
        "stats": stats,
    })


# ---------------------------------------------------------
# CLI
# ---------------------------------------------------------
@app.cli.command("seed")
@click.option("--admin-email", default=lambda: os.environ.get("FITRULE_ADMIN_EMAIL", "admin@fitrule.io"))
@click.option("--admin-password", default=lambda: os.environ.get("FITRULE_ADMIN_PASSWORD", "admin123"))
@click.option("--skip-exercises", is_flag=True, help="Only load programs, rules and the admin.")
@click.option("--force", is_flag=True, help="Replace an existing program and rule catalog.")
def seed_command(admin_email, admin_password, skip_exercises, force):
    """Load programs, rules, exercises and the admin account."""
    db = SessionLocal()
    try:
        existing = db.query(Program).count()
        if existing and not force:
            click.echo(f"Catalog already has {existing} programs; use --force to replace it.")
        else:
            if existing and db.query(Consultation).count():
                raise click.ClickException(
                    "Consultations reference the current catalog; refusing to replace it."
                )
            programs, rules = seed_catalog(db)
            click.echo(f"Seeded {len(programs)} programs and {len(rules)} rules.")
        if not skip_exercises:
            seed_exercises(db)
        seed_admin(db, bcrypt, admin_email, admin_password)
    finally:
        db.close()


if __name__ == "__main__":
    app.run(debug=True)
