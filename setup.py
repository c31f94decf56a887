########################################################
# SWAGX - setup                                        #
# Licensed under the AGPL-v3.0                         #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2026  #
########################################################

import re
from pathlib import Path

from setuptools import setup

# NOTE: This is the single source of truth for dependencies.
requirements = """# Networking & HTTP
requests>=2.31.0
urllib3>=2.2.0
tqdm>=4.66.0
tenacity>=8.2.0

# Authentication
PyJWT>=2.8.0

# Output
colorama>=0.4.6

# Parsing & config
PyYAML>=6.0.2
openapi-spec-validator>=0.7.2
python-dotenv>=1.0.0
"""

test_requirements = """pytest>=7.4.0
"""


#================ _parse_fallback_requirements ##########
def _parse_fallback_requirements(req_text: str) -> list:
    deps = []
    for raw in req_text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        deps.append(line)
    return deps


#================ _version ##########
def _version() -> str:
    text = (Path(__file__).parent / "version.py").read_text(encoding="utf-8")
    match = re.search(r"^__version__\s*=\s*['\"]([^'\"]+)['\"]", text, re.M)
    return match.group(1) if match else "0.0.0"


setup(
    name="swagx",
    version=_version(),
    description="SWAGX - Swagger/OpenAPI API security tester",
    author="Perry Mertens",
    author_email="pamsniffer@gmail.com",
    license="AGPL-3.0",
    python_requires=">=3.9",
    py_modules=[
        "auth_utils",
        "openapi_universal",
        "probe_generator",
        "report_utils",
        "request_executor",
        "result_aggregator",
        "scan_models",
        "security_tester",
        "swagx",
        "version",
        "vulnerability_analyzer",
    ],
    install_requires=_parse_fallback_requirements(requirements),
    extras_require={"test": _parse_fallback_requirements(test_requirements)},
    entry_points={"console_scripts": ["swagx=swagx:main"]},
)
