#!/usr/bin/env python3
"""CDK app entrypoint for the testing platform infrastructure."""

from __future__ import annotations

import os

import aws_cdk as cdk

from stacks.api_stack import ApiStack
from stacks.data_stack import DataStack

app = cdk.App()

env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)

stage_name = app.node.try_get_context("stageName") or "dev"
database_url = os.getenv("DATABASE_URL", "") or app.node.try_get_context("databaseUrl") or ""
jwt_secret = os.getenv("JWT_SECRET", "") or app.node.try_get_context("jwtSecret") or ""
jwt_refresh_secret = os.getenv("JWT_REFRESH_SECRET", "") or app.node.try_get_context("jwtRefreshSecret") or ""
cors_allow_origin = os.getenv("CORS_ALLOW_ORIGIN", "") or app.node.try_get_context("corsAllowOrigin") or "*"
cookie_domain = app.node.try_get_context("cookieDomain") or ""
retain_data = str(app.node.try_get_context("retainData") or "0").strip().lower() in {"1", "true", "yes", "on"}

if not database_url or not jwt_secret:
    raise SystemExit("DATABASE_URL and JWT_SECRET must be set (env or -c databaseUrl=/jwtSecret=)")

data_stack = DataStack(
    app,
    "TestroomDataStack",
    env=env,
    retain_data=retain_data,
)

api_stack = ApiStack(
    app,
    "TestroomApiStack",
    env=env,
    data_stack=data_stack,
    stage_name=stage_name,
    database_url=database_url,
    jwt_secret=jwt_secret,
    jwt_refresh_secret=jwt_refresh_secret or jwt_secret,
    cors_allow_origin=cors_allow_origin,
    cookie_domain=cookie_domain,
)
api_stack.add_dependency(data_stack)

app.synth()
