"""AWS client management for the S3 checkpoint store and EventBridge Scheduler."""
