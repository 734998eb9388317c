"""Data infrastructure stack for anti-cheating storage."""

from __future__ import annotations

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from constructs import Construct


class DataStack(Stack):
    """Owns the DynamoDB table used by the API stack."""

    def __init__(self, scope: Construct, construct_id: str, *, retain_data: bool = False, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.anti_cheating_table = dynamodb.Table(
            self,
            "AntiCheatingTable",
            partition_key=dynamodb.Attribute(name="storageKey", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.RETAIN if retain_data else RemovalPolicy.DESTROY,
        )

        CfnOutput(
            self,
            "AntiCheatingTableName",
            value=self.anti_cheating_table.table_name,
            description="Anti-cheating record table name",
        )
