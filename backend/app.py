# backend/app.py
import os
import threading
from datetime import datetime, timezone

from flask import Flask, Response, jsonify, request, send_from_directory
from flask_cors import CORS

from mealbot_logging import get_logger
from settings import get_settings
from settlement import Receipt, User, compute_matrix

logger = get_logger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")


class UnknownUser(LookupError):
    pass


class UserExists(ValueError):
    pass


def _utcnow():
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """ISO-8601 query value to an aware datetime; naive values are UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    stamp = datetime.fromisoformat(value)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class MealLedger:
    """In-memory users and receipts, served in the get-data wire format."""

    def __init__(self, users=(), clock=_utcnow):
        self._lock = threading.Lock()
        self._clock = clock
        self._users = []
        self._receipts = []
        for name in users:
            self.create_user(name)

    def create_user(self, name):
        with self._lock:
            if any(u["UPN"] == name for u in self._users):
                raise UserExists(name)
            user = {"ID": len(self._users), "UPN": name}
            self._users.append(user)
            return dict(user)

    def _lookup(self, name):
        for user in self._users:
            if user["UPN"] == name:
                return user
        raise UnknownUser(name)

    def _record(self, payer, payee, num_meals):
        payer_user = self._lookup(payer)
        payee_user = self._lookup(payee)
        receipt = {
            "Payer": payer_user["ID"],
            "Payee": payee_user["ID"],
            "NumMeals": num_meals,
            "DateTime": self._clock(),
        }
        self._receipts.append(receipt)
        return receipt

    def edit_meal(self, payer, payee, num_meals):
        # A negative count is the same debt recorded the other way round
        if num_meals < 0:
            payer, payee, num_meals = payee, payer, -num_meals

        with self._lock:
            return _receipt_to_wire(self._record(payer, payee, num_meals))

    def create_record(self, payer, recipient, credits):
        with self._lock:
            self._record(payer, recipient, credits)

    def whoami(self, user_id):
        with self._lock:
            for user in self._users:
                if user["ID"] == user_id:
                    return user["UPN"]
        raise UnknownUser(user_id)

    def _within(self, start, end):
        return [
            r for r in self._receipts
            if (start is None or r["DateTime"] >= start) and (end is None or r["DateTime"] <= end)
        ]

    def records(self, user1=None, user2=None, start=None, end=None, limit=None):
        """Records touching user1 (and user2, either direction), oldest first.

        With a limit only the most recent `limit` matches are returned.
        """
        with self._lock:
            names = {u["ID"]: u["UPN"] for u in self._users}
            wanted = [self._lookup(n)["ID"] for n in (user1, user2) if n is not None]
            matches = []
            for r in self._within(start, end):
                pair = {r["Payer"], r["Payee"]}
                if all(uid in pair for uid in wanted):
                    matches.append(r)

        if limit is not None:
            matches = matches[-limit:] if limit else []
        return [
            {
                "Payer": names[r["Payer"]],
                "Recipient": names[r["Payee"]],
                "Credits": r["NumMeals"],
                "Date": r["DateTime"].isoformat(),
            }
            for r in matches
        ]

    def summary_for(self, name, start=None, end=None):
        with self._lock:
            self_id = self._lookup(name)["ID"]
            users = [User(u["ID"], u["UPN"]) for u in self._users]
            receipts = self._within(start, end)
        return _summarize(self_id, users, receipts)

    def summary(self, start=None, end=None):
        with self._lock:
            users = [User(u["ID"], u["UPN"]) for u in self._users]
            receipts = self._within(start, end)
        return {user.name: _summarize(user.id, users, receipts) for user in users}

    def to_wire(self):
        # "Reciepts" is what existing clients read; keep the spelling.
        with self._lock:
            return {
                "Users": [dict(u) for u in self._users],
                "Reciepts": [_receipt_to_wire(r) for r in self._receipts],
            }


def _receipt_to_wire(receipt):
    return dict(receipt, DateTime=receipt["DateTime"].isoformat())


def _summarize(self_id, users, receipts):
    matrix = compute_matrix(users, [Receipt(r["Payer"], r["Payee"], r["NumMeals"]) for r in receipts])
    rv = {}
    for other in users:
        if other.id == self_id:
            continue
        outgoing = sum(r["NumMeals"] for r in receipts if r["Payer"] == self_id and r["Payee"] == other.id)
        incoming = sum(r["NumMeals"] for r in receipts if r["Payer"] == other.id and r["Payee"] == self_id)
        rv[other.name] = {
            "incoming-credits": incoming,
            "outgoing-credits": outgoing,
            "net-credits": matrix.between(self_id, other.id),
        }
    return rv


def create_app(ledger=None):
    app = Flask(__name__)
    # Lets the browser page poll the api from another origin
    CORS(app, origins="*", send_wildcard=True)
    app.config["LEDGER"] = ledger if ledger is not None else MealLedger(get_settings().users)

    def ledger_():
        return app.config["LEDGER"]

    # --- 1. HEALTH CHECK ---
    @app.route('/api', methods=['GET'])
    def health_check():
        return jsonify({"status": "healthy", "message": "Mealbot is running!"})

    @app.route('/api/echo', methods=['POST'])
    def echo():
        return Response(request.get_data(), mimetype=request.mimetype or "application/octet-stream")

    # --- 2. LEDGER ---
    @app.route('/api/get-data', methods=['GET'])
    def get_data():
        try:
            return jsonify(ledger_().to_wire())
        except Exception as e:
            logger.error("get_data_failed", error=str(e))
            return jsonify({"error": str(e)}), 500

    @app.route('/api/edit_meal/<payer>/<payee>/<num_meals>', methods=['POST'])
    def edit_meal(payer, payee, num_meals):
        try:
            count = int(num_meals)
        except ValueError:
            logger.warning("edit_meal_bad_count", num_meals=num_meals)
            return jsonify({"error": f"num_meals must be an integer, got {num_meals!r}"}), 400

        try:
            receipt = ledger_().edit_meal(payer, payee, count)
        except UnknownUser as e:
            logger.warning("edit_meal_unknown_user", user=str(e))
            return jsonify({"error": f"no such user: {e}"}), 400

        logger.info("meal_recorded", payer=payer, payee=payee, num_meals=count)
        return jsonify(receipt)

    @app.route('/api/whoami/<int:user_id>', methods=['GET'])
    def whoami(user_id):
        try:
            return ledger_().whoami(user_id)
        except UnknownUser:
            return jsonify({"error": f"no such user id: {user_id}"}), 400

    # --- 3. USERS ---
    @app.route('/api/users', methods=['POST'])
    def create_user():
        data = request.get_json(silent=True) or {}
        name = str(data.get("user") or "").strip()
        if not name:
            return jsonify({"error": "missing 'user'"}), 400
        try:
            user = ledger_().create_user(name)
        except UserExists:
            return jsonify({"error": f"user already exists: {name}"}), 409

        logger.info("user_created", user_id=user["ID"], name=name)
        return jsonify(user), 201

    # --- 4. V1 API ---
    def time_range():
        start, end = request.args.get("start"), request.args.get("end")
        # A range needs both ends
        if (start is None) != (end is None):
            raise ValueError("start and end must be given together")
        if start is None:
            return None, None
        return parse_timestamp(start), parse_timestamp(end)

    @app.route('/api/v1/summary', methods=['GET'])
    def v1_summary():
        try:
            start, end = time_range()
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        user = request.args.get("user")
        try:
            if user is None:
                return jsonify(ledger_().summary(start, end))
            return jsonify(ledger_().summary_for(user, start, end))
        except UnknownUser as e:
            return jsonify({"error": f"no such user: {e}"}), 400

    @app.route('/api/v1/record', methods=['GET'])
    def v1_records():
        args = request.args
        if "user2" in args and "user1" not in args:
            return jsonify({"error": "user2 requires user1"}), 400
        try:
            start, end = time_range()
            limit = args.get("limit", type=int)
            if "limit" in args and (limit is None or limit < 0):
                raise ValueError(f"limit must be a non-negative integer, got {args['limit']!r}")
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            records = ledger_().records(args.get("user1"), args.get("user2"), start, end, limit)
        except UnknownUser as e:
            return jsonify({"error": f"no such user: {e}"}), 400
        return jsonify(records)

    @app.route('/api/v1/record', methods=['POST'])
    def v1_create_record():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "expected a JSON object"}), 400

        payer, recipient, credits = data.get("payer"), data.get("recipient"), data.get("credits")
        if not isinstance(payer, str) or not isinstance(recipient, str):
            return jsonify({"error": "payer and recipient are required"}), 400
        if not isinstance(credits, int) or isinstance(credits, bool) or credits < 0:
            return jsonify({"error": f"credits must be a non-negative integer, got {credits!r}"}), 400

        try:
            ledger_().create_record(payer, recipient, credits)
        except UnknownUser as e:
            logger.warning("record_unknown_user", user=str(e))
            return jsonify({"error": f"no such user: {e}"}), 400

        logger.info("record_created", payer=payer, recipient=recipient, credits=credits)
        return jsonify({"status": "ok"})

    # --- 5. ROW TEMPLATE ---
    # Served as-is; the {{...}} placeholders are filled in by the client.
    @app.route('/templates/debtrow.html', methods=['GET'])
    def debt_row_template():
        return send_from_directory(TEMPLATE_DIR, "debtrow.html", mimetype="text/html")

    return app


app = create_app()


def main():
    app.run(debug=True, port=get_settings().port)


if __name__ == '__main__':
    main()
