import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13", "3.14"]

# psycopg2 ships a C extension; a cached wheel may be built for another interpreter.
_REBUILD_PER_PYTHON = ["psycopg2"]


def _install(session: nox.Session, *extras: str) -> None:
    """Install logistics and its test group into the session virtualenv."""
    args = ["poetry", "install", "--with", "test"]
    for extra in extras:
        args += ["--extras", extra]
    session.run(*args, external=True)
    if "postgres" in extras:
        session.run("pip", "install", "--force-reinstall", "--no-cache-dir", *_REBUILD_PER_PYTHON)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Full suite on the memory providers, every supported Python."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Aggregates, rate card and adapters only. No workflows, no HTTP."""
    _install(session)
    session.run("pytest", "-m", "domain", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_workflows(session: nox.Session) -> None:
    """Orchestrator, ledger, event handlers and BDD scenarios."""
    _install(session)
    session.run("pytest", "-m", "application", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_api(session: nox.Session) -> None:
    """FastAPI routes through the TestClient."""
    _install(session, "postgres")
    session.run("pytest", "-m", "integration", *session.posargs)
