from tender_engine.models import Package, Supplier, User
from tender_engine.seed import seed_demo_data


def test_seed_demo_is_idempotent(app):
    first = seed_demo_data("demo")
    second = seed_demo_data("demo")

    assert first == {"users": 4, "suppliers": 2, "projects": 1, "budgetLines": 4, "packages": 2}
    assert set(second.values()) == {0}
    assert User.query.filter_by(tenant_id="demo").count() == 4
    assert Package.query.filter_by(tenant_id="demo").count() == 2


def test_seed_demo_command(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed-demo", "--tenant", "cli-demo"])

    assert result.exit_code == 0
    assert "cli-demo" in result.output
    assert Supplier.query.filter_by(tenant_id="cli-demo").count() == 2


def test_init_db_command(app):
    result = app.test_cli_runner().invoke(args=["init-db"])

    assert result.exit_code == 0
    assert "created" in result.output
