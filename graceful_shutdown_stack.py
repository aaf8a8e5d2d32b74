import os

from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
    aws_apigateway as apigw,
    aws_ecr_assets as ecr_assets,
    aws_lambda as _lambda,
)
from constructs import Construct

LAMBDA_SRC = os.path.join(os.path.dirname(os.path.abspath(__file__)), "lambda_src")


class GracefulShutdownStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, *, shutdown_grace_seconds: float = 0, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        code = _lambda.DockerImageCode.from_image_asset(
            LAMBDA_SRC,
            platform=ecr_assets.Platform.LINUX_ARM64,
        )

        fn = _lambda.DockerImageFunction(
            self,
            "GracefulShutdownFunction",
            function_name="graceful-shutdown-python-internal-extension",
            code=code,
            architecture=_lambda.Architecture.ARM_64,
            memory_size=128,
            timeout=Duration.seconds(3),
            environment={
                "EXTENSION_NAME": "no-op",
                "LOG_LEVEL": "INFO",
                "SHUTDOWN_GRACE_SECONDS": str(shutdown_grace_seconds),
            },
        )

        api = apigw.LambdaRestApi(self, "GracefulShutdownRestApi", handler=fn, proxy=False)
        hello = api.root.add_resource("hello")
        hello.add_method("GET")

        CfnOutput(
            self,
            "GracefulShutdownApi",
            description="API Gateway endpoint URL for Prod stage for the hello function",
            value=api.url_for_path("/hello"),
        )
        CfnOutput(self, "GracefulShutdownFunctionArn", description="Hello function ARN", value=fn.function_arn)
        CfnOutput(
            self,
            "GracefulShutdownFunctionIamRole",
            description="Implicit IAM role created for the hello function",
            value=fn.role.role_arn,
        )
