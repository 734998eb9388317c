"""API infrastructure stack for Lambda + API Gateway wiring."""

from __future__ import annotations

from pathlib import Path

from aws_cdk import BundlingOptions, CfnOutput, Duration, Stack
from aws_cdk import aws_apigateway as apigateway
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

from stacks.data_stack import DataStack

_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"
_ALLOW_METHODS = "GET,POST,DELETE,OPTIONS"


class ApiStack(Stack):
    """Owns API Gateway and the Lambda that serves every route."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        data_stack: DataStack,
        stage_name: str,
        database_url: str,
        jwt_secret: str,
        jwt_refresh_secret: str,
        cors_allow_origin: str,
        cookie_domain: str,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        project_root = Path(__file__).resolve().parents[2]
        lambda_code = lambda_.Code.from_asset(
            str(project_root),
            exclude=[
                ".git",
                ".github",
                "infra",
                "cdk.out",
                "__pycache__",
                "tests",
                "scripts",
                "*.md",
            ],
            # SQLAlchemy, python-jose and bcrypt are not in the Lambda runtime.
            bundling=BundlingOptions(
                image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                command=[
                    "bash",
                    "-c",
                    "cp -r /asset-input /tmp/testroom-src && "
                    "pip install --no-cache-dir /tmp/testroom-src -t /asset-output",
                ],
            ),
        )

        env = {
            "DATABASE_URL": database_url,
            "JWT_SECRET": jwt_secret,
            "JWT_REFRESH_SECRET": jwt_refresh_secret,
            "ANTI_CHEATING_TABLE": data_stack.anti_cheating_table.table_name,
            "CORS_ALLOW_ORIGIN": cors_allow_origin,
            "CORS_ALLOW_METHODS": _ALLOW_METHODS,
            "CORS_ALLOW_HEADERS": _ALLOW_HEADERS,
            "COOKIE_DOMAIN": cookie_domain,
        }

        app_api_handler = lambda_.Function(
            self,
            "AppApiHandler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_code,
            handler="backend.runtime.lambda_handler",
            timeout=Duration.seconds(29),
            memory_size=256,
            environment=env,
        )

        data_stack.anti_cheating_table.grant_read_write_data(app_api_handler)

        self.rest_api = apigateway.RestApi(
            self,
            "TestroomApi",
            rest_api_name=f"testroom-{stage_name}-api",
            deploy_options=apigateway.StageOptions(stage_name=stage_name),
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=[cors_allow_origin] if cors_allow_origin != "*" else apigateway.Cors.ALL_ORIGINS,
                allow_methods=_ALLOW_METHODS.split(","),
                allow_headers=_ALLOW_HEADERS.split(","),
                allow_credentials=cors_allow_origin != "*",
            ),
        )

        for response_type, name in (
            (apigateway.ResponseType.DEFAULT_4_XX, "Default4xx"),
            (apigateway.ResponseType.DEFAULT_5_XX, "Default5xx"),
        ):
            self.rest_api.add_gateway_response(
                name,
                type=response_type,
                response_headers={
                    "Access-Control-Allow-Origin": f"'{cors_allow_origin}'",
                    "Access-Control-Allow-Headers": f"'{_ALLOW_HEADERS}'",
                    "Access-Control-Allow-Methods": f"'{_ALLOW_METHODS}'",
                },
            )

        app_integration = apigateway.LambdaIntegration(app_api_handler)
        self.rest_api.root.add_method("ANY", app_integration)
        self.rest_api.root.add_proxy(default_integration=app_integration, any_method=True)

        api_base_url = self.rest_api.url.rstrip("/")
        CfnOutput(
            self,
            "ApiBaseUrl",
            value=api_base_url,
            description="Base URL for the testing platform API",
        )
        CfnOutput(
            self,
            "HealthEndpoint",
            value=f"{api_base_url}/health",
            description="Health check endpoint used by smoke tests",
        )
