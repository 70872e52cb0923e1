import pytest

from application import create_app
from erros import UpstreamError
from extensions import Servicos, db, init_servicos
from models import UserRole
from modulos.App_financeiro.referencia import alocador_do_banco

ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"
ADMIN_ID = "00000000-0000-0000-0000-0000000000a1"
USER_ID = "00000000-0000-0000-0000-0000000000b2"


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.created = []
        self.fail_create = False
        self.links = {}

    def get_user(self, token):
        return self.users.get(token)

    def create_user(self, email, password, metadata=None):
        if self.fail_create:
            raise UpstreamError("Erro ao criar usuário: email already registered")
        user = {"id": f"00000000-0000-0000-0000-{len(self.created) + 1:012d}", "email": email,
                "user_metadata": metadata or {}}
        self.created.append((email, password, metadata))
        return user

    def generate_magic_link(self, email):
        link = f"https://auth.example.com/verify?token=magic&email={email}"
        self.links[email] = link
        return link


class FakePush:
    def __init__(self):
        self.sent = []
        self.fail_tokens = set()

    def send(self, token, title, body, data=None, sound_type="default", vibration_enabled=True):
        if token in self.fail_tokens:
            raise UpstreamError(f"FCM error 404: token {token} unregistered")
        self.sent.append({"token": token, "title": title, "body": body, "data": data,
                          "sound_type": sound_type, "vibration_enabled": vibration_enabled})
        return {"name": f"projects/test/messages/{len(self.sent)}"}


class FakeStripe:
    def __init__(self):
        self.subscriptions = {}
        self.customers = {}
        self.calls = []

    def retrieve_subscription(self, subscription_id, expand=None):
        self.calls.append(("subscription", subscription_id, expand))
        return self.subscriptions[subscription_id]

    def retrieve_customer(self, customer_id):
        self.calls.append(("customer", customer_id))
        return self.customers.get(customer_id, {"id": customer_id, "metadata": {}})

    def find_customer_by_email(self, email):
        self.calls.append(("find_customer", email))
        for customer in self.customers.values():
            if (customer.get("email") or "").lower() == email.lower():
                return customer
        return None

    def list_active_subscriptions(self, customer_id=None, limit=100):
        self.calls.append(("list_subscriptions", customer_id, limit))
        ativas = [s for s in self.subscriptions.values() if s.get("status") == "active"]
        if customer_id:
            ativas = [s for s in ativas if s.get("customer") == customer_id]
        return ativas[:limit]


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False}},
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "VAPID_PUBLIC_KEY": "vapid-public-key",
        "RODAR_LEMBRETES": False,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def fake_auth():
    auth = FakeAuth()
    auth.users[ADMIN_TOKEN] = {"id": ADMIN_ID, "email": "admin@appfinanceiro.com"}
    auth.users[USER_TOKEN] = {"id": USER_ID, "email": "cliente@appfinanceiro.com"}
    return auth


@pytest.fixture
def fake_push():
    return FakePush()


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def servicos(app, fake_auth, fake_push, fake_stripe):
    servicos = Servicos(
        auth=fake_auth,
        stripe=fake_stripe,
        push=fake_push,
        alocador=lambda: alocador_do_banco(db.engine),
    )
    init_servicos(app, servicos)
    db.session.add(UserRole(user_id=ADMIN_ID, role="admin"))
    db.session.commit()
    return servicos


@pytest.fixture
def client(app, servicos):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {USER_TOKEN}"}
