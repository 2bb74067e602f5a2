"""
Backup App - Daily Index Archive

Responsibilities:
- Split the previous UTC day into fixed-size query windows
- Probe the document count and download each window, one at a time, with pacing
- Merge window files into one day file, recounting documents as a self-check
- Gzip the day file and upload it to S3 with bounded retries
- Remove every temporary file the run created

Output:
- s3://<bucket>/<s3_path>/<MM-DD-YY>-<index>.json.gz
"""
