"""
S3 sink for exported LST rasters.

Objects are written as Cloud Optimized GeoTIFFs under <folder>/<description>.tif;
one object per acquisition date, so each date can be replaced or removed on its own.
"""
import os
import logging
from typing import Any, Dict, Optional
import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

COG_CONTENT_TYPE = 'image/tiff; application=geotiff; profile=cloud-optimized'

MISSING_OBJECT_CODES = ('404', 'NoSuchKey', 'NotFound')


class S3StorageService:
    """Stores exported rasters in a single S3 bucket."""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-west-2",
        endpoint_url: Optional[str] = None
    ):
        """
        Args:
            bucket_name: Destination bucket
            region: AWS region (default: us-west-2)
            endpoint_url: Optional endpoint URL for local testing (e.g., LocalStack)
        """
        self.bucket_name = bucket_name
        self.region = region
        self.s3_client = boto3.client('s3', region_name=region, endpoint_url=endpoint_url)

        logger.info(f"Initialized S3StorageService for bucket: {bucket_name}")

    def object_url(self, s3_key: str) -> str:
        return f"s3://{self.bucket_name}/{s3_key}"

    def upload_file(
        self,
        local_path: str,
        s3_key: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Upload an exported GeoTIFF.

        Metadata values are converted to strings, as S3 user metadata requires.

        Returns:
            s3:// URL of the object

        Raises:
            FileNotFoundError: If local file doesn't exist
            ClientError: If the upload is rejected
        """
        if not os.path.exists(local_path):
            raise FileNotFoundError(f"Local file not found: {local_path}")

        extra_args = {'ContentType': COG_CONTENT_TYPE}
        if metadata:
            extra_args['Metadata'] = {key: str(value) for key, value in metadata.items()}

        try:
            self.s3_client.upload_file(local_path, self.bucket_name, s3_key, ExtraArgs=extra_args)
        except ClientError as e:
            logger.error(f"Failed to upload {local_path} to {self.object_url(s3_key)}: {e}")
            raise

        logger.info(f"Uploaded {local_path} to {self.object_url(s3_key)}")
        return self.object_url(s3_key)

    def file_exists(self, s3_key: str) -> bool:
        """Whether the object exists; errors other than 'not found' propagate."""
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError as e:
            if e.response['Error']['Code'] in MISSING_OBJECT_CODES:
                return False
            raise
        return True

    def delete_file(self, s3_key: str) -> bool:
        """
        Delete one exported object.

        Raises:
            ClientError: If S3 deletion fails
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError as e:
            logger.error(f"Failed to delete {self.object_url(s3_key)}: {e}")
            raise

        logger.info(f"Deleted {self.object_url(s3_key)}")
        return True
