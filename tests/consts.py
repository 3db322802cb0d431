TEST_BUCKET_NAME = "test-owner-transfer-checkpoints"
TEST_QUEUE_KEY = "QUEUE_TEST"
CURRENT_OWNER = "admin@example.com"
NEW_OWNER = "original@example.com"
OTHER_OWNER = "someone@example.com"
TEST_TARGET_ARN = "arn:aws:lambda:us-east-1:123456789012:function:owner-transfer"
TEST_ROLE_ARN = "arn:aws:iam::123456789012:role/owner-transfer-scheduler"
