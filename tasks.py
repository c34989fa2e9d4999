"""Modern Python task runner using invoke."""

from invoke import task


@task
def install(c):
    """Install the package and its development dependencies."""
    print("📚 Installing dependencies...")
    c.run("pip install -e '.[dev]'")


@task
def test(c, verbose=False):
    """Run the unit tests (E2E tests excluded)."""
    cmd = "pytest -m 'not e2e'"
    if verbose:
        cmd += " -v"
    print("🧪 Running tests...")
    c.run(cmd)


@task
def test_cov(c):
    """Run tests with coverage reporting."""
    print("🧪 Running tests with coverage...")
    c.run("pytest -m 'not e2e' --cov=src/proxy_resync --cov-report=html --cov-report=term")


@task
def e2e(c, etcd_bin="etcd", etcdctl_bin="etcdctl"):
    """Run the auto-sync scenario against real etcd binaries."""
    print("🚀 Running grpc-proxy auto-sync scenario...")
    c.run(f"proxy-resync-e2e run --etcd-bin {etcd_bin} --etcdctl-bin {etcdctl_bin} --output ./e2e_output")


@task
def lint(c):
    """Run linting tools."""
    print("🔍 Running linters...")
    c.run("flake8 src/ tests/")
    c.run("mypy src/")


@task
def format_code(c):
    """Format code with black and isort."""
    print("🎨 Formatting code...")
    c.run("black src/ tests/")
    c.run("isort src/ tests/")


@task
def clean(c):
    """Clean up build artifacts, cache files and scenario output."""
    print("🧹 Cleaning up...")
    c.run("rm -rf build/ dist/ *.egg-info/ .pytest_cache/ .coverage htmlcov/ e2e_output/ logs/")
    c.run("find . -type d -name __pycache__ -exec rm -rf {} +", warn=True)
    c.run("find . -type f -name '*.pyc' -delete", warn=True)
