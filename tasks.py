from invoke import task


@task
def lint(c):
    c.run("ruff check .")


@task
def format_check(c):
    c.run("ruff format --check .")


@task
def test(c, concurrency=False):
    if concurrency:
        c.run("pytest tests/test_concurrency.py -v")
    else:
        c.run("pytest")


@task
def simulate(c):
    c.run("python scripts/run_season_simulation.py")


@task
def ci(c):
    lint(c)
    format_check(c)
    test(c)
