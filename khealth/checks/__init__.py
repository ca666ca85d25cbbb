"""Ready-made health checks that read the cluster through a client and report through a reporter."""